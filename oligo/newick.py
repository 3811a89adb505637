"""
Rooted trees built from agglomerative merge traces, with Newick output.

Nodes live in a flat list and refer to their parent and children by index.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from oligo.exceptions import StructuralError

# Parent value marking the root of a merge trace. Index 0 is always a leaf,
# so it never appears as a real parent.
ROOT_SENTINEL = 0


@dataclass
class TreeNode:
    """A node of a Tree; parent and children are indices into Tree.nodes."""
    name: str = ''
    distance: float = 0.0  # Distance to the parent node
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)


class Tree:
    def __init__(self):
        self.nodes: List[TreeNode] = []

    def add_node(self, name: str = '') -> int:
        self.nodes.append(TreeNode(name=name))
        return len(self.nodes) - 1

    def add_child(self, parent: int, child: int) -> None:
        self.nodes[child].parent = parent
        self.nodes[parent].children.append(child)

    def set_name(self, node: int, name: str) -> None:
        self.nodes[node].name = name

    def set_distance(self, node: int, distance: float) -> None:
        self.nodes[node].distance = distance

    def is_leaf(self, node: int) -> bool:
        return not self.nodes[node].children

    def is_root(self, node: int) -> bool:
        return self.nodes[node].parent is None

    @property
    def root(self) -> int:
        """Index of the single node without a parent."""
        roots = [i for i, node in enumerate(self.nodes) if node.parent is None]
        if len(roots) != 1:
            raise StructuralError(f"Tree has {len(roots)} root nodes, expected exactly one")
        return roots[0]

    def leaf_names(self) -> List[str]:
        return [node.name for i, node in enumerate(self.nodes) if self.is_leaf(i)]

    def to_newick(self, node: Optional[int] = None) -> str:
        """
        Format the subtree below node (default: the root) in Newick format.

        Internal nodes are written as "(child,child,...)name:distance" and
        leaves as "name:distance"; a semicolon terminates the root.
        """
        if node is None:
            node = self.root

        # Post-order walk with an explicit stack so deep trees do not hit
        # the recursion limit
        rendered = {}
        stack = [(node, False)]
        while stack:
            current, expanded = stack.pop()
            children = self.nodes[current].children
            if children and not expanded:
                stack.append((current, True))
                for child in reversed(children):
                    stack.append((child, False))
                continue

            tree_node = self.nodes[current]
            subtree = ''
            if children:
                subtree = '(' + ','.join(rendered.pop(child) for child in children) + ')'
            rendered[current] = f"{subtree}{tree_node.name}:{tree_node.distance:f}"

        newick = rendered[node]
        if self.is_root(node):
            newick += ';'
        return newick

    @classmethod
    def from_merge_trace(cls, ids: Sequence[str],
                         parents: Sequence[int],
                         costs: Sequence[float]) -> 'Tree':
        """
        Rebuild the tree described by an agglomerative merge trace.

        Args:
            ids: Names of the n leaves
            parents: 2n-1 parent indices; leaves are 0..n-1, the node created
                by the j-th merge is n+j and the root has parent ROOT_SENTINEL
            costs: n information values, costs[j] after the j-th merge

        Each child of internal node i is placed at distance
        costs[i-n] - costs[i-n+1] from it.

        Raises:
            StructuralError: If the trace does not describe a single rooted
                tree over the given leaves
        """
        n = len(ids)
        if n == 0:
            raise StructuralError("Merge trace has no leaves")
        if len(parents) != 2 * n - 1:
            raise StructuralError(f"Expected {2 * n - 1} parent entries for {n} leaves, got {len(parents)}")
        if len(costs) != n:
            raise StructuralError(f"Expected {n} cost entries for {n} leaves, got {len(costs)}")

        roots = [i for i, parent in enumerate(parents) if parent == ROOT_SENTINEL]
        if not roots:
            raise StructuralError("Root node not found in merge trace")
        if len(roots) > 1:
            raise StructuralError(f"Merge trace has {len(roots)} root nodes: {roots}")

        tree = cls()
        for i in range(2 * n - 1):
            tree.add_node(ids[i] if i < n else '')

        # Create relationships between parents and children
        for i, parent in enumerate(parents):
            if i == roots[0]:
                continue
            parent = int(parent)
            if parent < n or parent >= 2 * n - 1 or parent == i:
                raise StructuralError(f"Node {i} has invalid parent {parent}")
            tree.add_child(parent, i)

        for i in range(n, 2 * n - 1):
            if tree.is_leaf(i):
                raise StructuralError(f"Internal node {i} has no children")

        reachable = tree._count_reachable(roots[0])
        if reachable != len(tree.nodes):
            raise StructuralError(f"Only {reachable} of {len(tree.nodes)} nodes are reachable from the root")

        # The difference in merge costs is the distance of each child to its parent
        for i in range(n, 2 * n - 1):
            distance = float(costs[i - n]) - float(costs[i - n + 1])
            for child in tree.nodes[i].children:
                tree.set_distance(child, distance)

        logging.debug(f"Built tree with {n} leaves from merge trace, root at node {roots[0]}")
        return tree

    def _count_reachable(self, start: int) -> int:
        seen = {start}
        stack = [start]
        while stack:
            for child in self.nodes[stack.pop()].children:
                if child not in seen:
                    seen.add(child)
                    stack.append(child)
        return len(seen)


def from_merge_trace(ids: Sequence[str], parents: Sequence[int], costs: Sequence[float]) -> Tree:
    return Tree.from_merge_trace(ids, parents, costs)


def serialize(tree: Tree) -> str:
    """Newick representation of the whole tree, terminated with a semicolon."""
    return tree.to_newick()
