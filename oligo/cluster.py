"""
Clustering of oligo frequency matrices.

Two methods are provided:
- k-means: partitions sequences into a fixed number of clusters and reports
  the assignment and distance of every sequence.
- Agglomerative Information Bottleneck (AIB): treats the matrix as a joint
  distribution P(sequence, oligo) and repeatedly merges the two clusters whose
  union loses the least mutual information, producing a merge trace that is
  turned into a Newick tree.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from scipy.cluster.vq import kmeans2, vq
from tqdm import tqdm

from oligo.exceptions import ParameterError
from oligo.newick import ROOT_SENTINEL, Tree
from oligo.types import KMeansResult, MergeTrace


def _check_matrix(matrix) -> np.ndarray:
    data = np.asarray(matrix, dtype=float)
    if data.ndim != 2 or data.shape[0] == 0 or data.shape[1] == 0:
        raise ParameterError(f"Expected a non-empty two-dimensional frequency matrix, got shape {data.shape}")
    if not np.all(np.isfinite(data)):
        raise ParameterError("Frequency matrix contains non-finite values")
    return data


def _kmeans_plus_plus(data: np.ndarray, num_centers: int, rng: np.random.Generator) -> np.ndarray:
    """Pick initial centers, each drawn with probability proportional to its
    squared distance from the closest center chosen so far."""
    n = data.shape[0]
    centers = np.empty((num_centers, data.shape[1]))
    centers[0] = data[rng.integers(n)]
    closest = np.sum((data - centers[0]) ** 2, axis=1)

    for i in range(1, num_centers):
        total = closest.sum()
        if total > 0:
            choice = rng.choice(n, p=closest / total)
        else:
            choice = rng.integers(n)
        centers[i] = data[choice]
        closest = np.minimum(closest, np.sum((data - centers[i]) ** 2, axis=1))

    return centers


def run_kmeans(matrix, num_centers: int,
               seed: Optional[int] = None,
               max_iterations: int = 100) -> KMeansResult:
    """
    Cluster the rows of a frequency matrix with Lloyd's k-means algorithm.

    Args:
        matrix: Frequency matrix, one row per sequence
        num_centers: Number of clusters to search for
        seed: Seed for k-means++ initialization
        max_iterations: Number of refinement iterations

    Returns:
        KMeansResult with the cluster index and squared Euclidean distance to
        its center for every row
    """
    data = _check_matrix(matrix)
    if num_centers < 1:
        raise ParameterError(f"Number of centers must be at least 1, got {num_centers}")
    if max_iterations < 1:
        raise ParameterError(f"Number of iterations must be at least 1, got {max_iterations}")

    n = data.shape[0]
    if num_centers > n:
        logging.warning(f"Requested {num_centers} centers for {n} sequences, using {n}")
        num_centers = n

    rng = np.random.default_rng(seed)
    initial = _kmeans_plus_plus(data, num_centers, rng)
    logging.debug(f"Initial centers:\n{initial}")

    centers, _ = kmeans2(data, initial, iter=max_iterations, minit='matrix', missing='warn')
    # Labels from kmeans2 predate its last center update
    assignments, _ = vq(data, centers)
    distances = np.sum((data - centers[assignments]) ** 2, axis=1)

    logging.debug(f"Refined centers:\n{centers}")
    logging.info(f"k-means assigned {n} sequences to {len(np.unique(assignments))} clusters")
    return KMeansResult(assignments=assignments, distances=distances, centers=centers)


def _information(joint: np.ndarray, pc: np.ndarray) -> np.ndarray:
    """Contribution of each row of a joint distribution to I(X;C), in nats."""
    px = joint.sum(axis=-1, keepdims=True)
    with np.errstate(divide='ignore', invalid='ignore'):
        terms = joint * np.log(joint / (px * pc))
    return np.where(joint > 0, terms, 0.0).sum(axis=-1)


def run_aib(matrix) -> MergeTrace:
    """
    Run the Agglomerative Information Bottleneck over the rows of a matrix.

    The matrix is normalized to a joint distribution P(x, c). Starting with
    one cluster per row, the pair of clusters whose merge loses the least
    mutual information I(X;C) is merged until a single cluster remains.

    Returns:
        MergeTrace where the node created by merge j is n+j, the root's
        parent is ROOT_SENTINEL, costs[0] is I(X;C) of the singleton clusters
        and costs[j] the information left after merge j
    """
    data = _check_matrix(matrix)
    if np.any(data < 0):
        raise ParameterError("Frequency matrix contains negative values")
    total = data.sum()
    if total <= 0:
        raise ParameterError("Frequency matrix holds no counts")

    n = data.shape[0]
    rows = data / total
    pc = rows.sum(axis=0)

    parents = np.zeros(2 * n - 1, dtype=np.int64)
    costs = np.zeros(n)

    contribution = _information(rows, pc)
    information = float(contribution.sum())
    costs[0] = information

    # loss[a, b] is the information lost by merging the clusters in slots a and b
    loss = np.full((n, n), np.inf)
    for i in tqdm(range(n - 1), desc="Computing merge costs"):
        values = contribution[i] + contribution[i + 1:] - _information(rows[i] + rows[i + 1:], pc)
        loss[i, i + 1:] = values
        loss[i + 1:, i] = values

    node_of_slot = np.arange(n)
    active = np.ones(n, dtype=bool)

    for merge in range(n - 1):
        a, b = np.unravel_index(np.argmin(loss), loss.shape)
        if a > b:
            a, b = b, a
        delta = max(float(loss[a, b]), 0.0)

        node = n + merge
        parents[node_of_slot[a]] = node
        parents[node_of_slot[b]] = node
        information = max(information - delta, 0.0)
        costs[merge + 1] = information

        # The merged cluster takes slot a, slot b is retired
        rows[a] += rows[b]
        contribution[a] = _information(rows[a], pc)
        node_of_slot[a] = node
        active[b] = False
        loss[b, :] = np.inf
        loss[:, b] = np.inf

        others = np.flatnonzero(active)
        others = others[others != a]
        if others.size:
            values = contribution[a] + contribution[others] - _information(rows[a] + rows[others], pc)
            loss[a, others] = values
            loss[others, a] = values

    parents[2 * n - 2] = ROOT_SENTINEL
    logging.debug(f"AIB costs: {costs}")
    logging.debug(f"AIB parents: {parents}")
    return MergeTrace(parents=parents, costs=costs)


def aib_tree(ids: Sequence[str], matrix) -> Tree:
    """Cluster a frequency matrix with AIB and rebuild the resulting tree."""
    trace = run_aib(matrix)
    return Tree.from_merge_trace(ids, trace.parents, trace.costs)


def format_assignments(ids: Sequence[str], result: KMeansResult) -> List[str]:
    """One report line per sequence: identifier, cluster index and distance."""
    return [
        f"{identifier:>23}: {int(assignment)}\t{float(distance):f}"
        for identifier, assignment, distance in zip(ids, result.assignments, result.distances)
    ]
