"""
Oligo: clustering of nucleotide sequences by oligonucleotide usage frequency.

Sequences are sampled into an oligo frequency matrix that is clustered with
k-means or the Agglomerative Information Bottleneck, the latter reported as a
Newick tree.
"""

__version__ = "0.2.0"

from .core import main as oligo_main

__all__ = ["oligo_main", "__version__"]
