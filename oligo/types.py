"""Shared data structures for oligo modules."""

from typing import NamedTuple

import numpy as np


class IndexEntry(NamedTuple):
    """Location of one FASTA record found while indexing a file."""
    identifier: str
    length: int  # Sequence length with line endings removed
    offset: int  # Byte offset of the header line


class MergeTrace(NamedTuple):
    """Result of an agglomerative run over n leaves.

    parents has 2n-1 entries: leaves are 0..n-1 and the node created by the
    j-th merge is n+j. costs has n entries: costs[0] is the information before
    any merge and costs[j] the information left after merge j.
    """
    parents: np.ndarray
    costs: np.ndarray


class KMeansResult(NamedTuple):
    """Per-row cluster assignments from the partitioning method."""
    assignments: np.ndarray
    distances: np.ndarray  # Squared Euclidean distance to the assigned center
    centers: np.ndarray
