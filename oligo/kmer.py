"""
Oligonucleotide usage frequency matrices.

Each retained sequence is sampled with randomly placed windows of a fixed
fragment length. Every window is cut into disjoint oligos of length k which
are counted against all 4**k possible oligos, and the counts are normalized by
the number of samples and the number of oligo positions in a fragment.
"""

import logging
import random
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from oligo.exceptions import ParameterError
from oligo.fasta import SequenceStore
from oligo.iupac import COMPATIBLE_CODES, is_unambiguous, sequence_equals

NUCLEOTIDES = 'acgt'

# Number of samples taken per fragment length of sequence
SAMPLING_FACTOR = 1.5


def number_of_kmers(k: int) -> int:
    return len(NUCLEOTIDES) ** k


def enumerate_kmers(k: int) -> List[str]:
    """
    Generate every oligo of length k over a, c, g and t.

    The position of an oligo in the list is its value in base 4 with digits
    a=0, c=1, g=2, t=3 and the first character as the least significant
    digit, e.g. for k=2: aa, ca, ga, ta, ac, cc, ...
    This order defines the columns of the frequency matrix.
    """
    if k < 1:
        raise ParameterError(f"Oligo length must be at least 1, got {k}")

    kmers = []
    for index in range(number_of_kmers(k)):
        value = index
        digits = []
        for _ in range(k):
            value, digit = divmod(value, len(NUCLEOTIDES))
            digits.append(NUCLEOTIDES[digit])
        kmers.append(''.join(digits))
    return kmers


def kmer_index(kmer: str) -> int:
    """Column of an unambiguous oligo in the enumerate_kmers() order."""
    index = 0
    for base in reversed(kmer.lower()):
        index = index * len(NUCLEOTIDES) + NUCLEOTIDES.index(base)
    return index


def sampling_plan(length: int, fragment_length: int) -> Tuple[int, int]:
    """
    Number of windows to sample from a sequence and the spacing between
    the regions they are drawn from.

    Returns:
        Tuple of (num_samples, step_size)
    """
    num_samples = max(1, round(SAMPLING_FACTOR * length / fragment_length))
    step_size = round((length - fragment_length) / num_samples)
    return num_samples, step_size


def sample_offsets(length: int, fragment_length: int, rng: random.Random) -> List[int]:
    """
    Draw one window start per sample, the j-th from [j*step, (j+1)*step).

    Starts are capped so that every window holds a full fragment.
    """
    num_samples, step_size = sampling_plan(length, fragment_length)
    last_start = length - fragment_length

    offsets = []
    for j in range(num_samples):
        if step_size > 0:
            start = j * step_size + rng.randrange(step_size)
        else:
            start = 0
        offsets.append(min(start, last_start))
    return offsets


def count_kmers(windows: Sequence[str], k: int, kmers: Sequence[str]) -> Tuple[np.ndarray, int]:
    """
    Count the disjoint oligos of every window.

    Unambiguous oligos increment their own column. Oligos with IUPAC codes are
    compared with every possible oligo and may increment several columns.
    Oligos containing an unrecognized code are not counted.

    Returns:
        Tuple of (counts per column, number of oligos skipped as unrecognized)
    """
    counts = np.zeros(len(kmers))
    unrecognized = 0

    for window in windows:
        window = window.lower()
        for position in range(0, len(window) - k + 1, k):
            oligo = window[position:position + k]
            if is_unambiguous(oligo):
                counts[kmer_index(oligo)] += 1
            elif all(base in COMPATIBLE_CODES for base in oligo):
                for column, kmer in enumerate(kmers):
                    if sequence_equals(oligo, kmer):
                        counts[column] += 1
            else:
                unrecognized += 1

    return counts, unrecognized


def build_frequency_matrix(store: SequenceStore,
                           oligo_length: int,
                           fragment_length: int,
                           rng: Optional[random.Random] = None,
                           max_threads: int = 1) -> np.ndarray:
    """
    Calculate the oligo usage frequency for each retained sequence of a store.

    Args:
        store: Sequence store; every retained sequence must be at least
            fragment_length long (set its minimum length to fragment_length)
        oligo_length: Length k of the counted oligos
        fragment_length: Length of the sampled windows
        rng: Random source for window placement; pass a seeded
            random.Random for reproducible matrices
        max_threads: Number of worker threads counting oligos

    Returns:
        Matrix with one row per retained sequence (file order) and one column
        per oligo in enumerate_kmers() order
    """
    if oligo_length < 1:
        raise ParameterError(f"Oligo length must be at least 1, got {oligo_length}")
    if fragment_length < oligo_length:
        raise ParameterError(
            f"Fragment length ({fragment_length}) must not be smaller than the oligo length ({oligo_length})"
        )

    entries = store.retained_entries()
    if not entries:
        raise ParameterError(f"No sequences of at least {store.minimum_length} nucleotides to sample")

    too_short = [entry for entry in entries if entry.length < fragment_length]
    if too_short:
        raise ParameterError(
            f"{len(too_short)} retained sequences are shorter than the fragment length "
            f"{fragment_length} (e.g. {too_short[0].identifier}: {too_short[0].length} nt)"
        )

    if rng is None:
        rng = random.Random()

    kmers = enumerate_kmers(oligo_length)
    positions_per_fragment = fragment_length - oligo_length + 1
    matrix = np.zeros((len(entries), len(kmers)))

    logging.debug(f"Sampling {len(entries)} sequences: oligo_length={oligo_length}, "
                  f"fragment_length={fragment_length}, {len(kmers)} oligo combinations")

    def draw_windows(record):
        sequence = str(record.seq)
        offsets = sample_offsets(len(sequence), fragment_length, rng)
        return [sequence[start:start + fragment_length] for start in offsets]

    def count_row(row, identifier, windows):
        counts, unrecognized = count_kmers(windows, oligo_length, kmers)
        if unrecognized:
            logging.warning(f"{identifier}: skipped {unrecognized} oligos with unrecognized nucleotide codes")
        return row, len(windows), counts

    def store_row(result):
        row, num_samples, counts = result
        matrix[row] = counts / (num_samples * positions_per_fragment)
        progress.update(1)

    # Windows are drawn in the calling thread, in file order; only counting
    # runs on the workers
    store.reset()
    with tqdm(total=len(entries), desc="Counting oligonucleotides") as progress:
        if max_threads > 1 and len(entries) > 1:
            with ThreadPoolExecutor(max_workers=max_threads) as executor:
                pending = deque()
                for row, record in enumerate(store.iterate()):
                    pending.append(executor.submit(count_row, row, record.id, draw_windows(record)))
                    # At most two rows of windows queued per worker
                    while len(pending) > 2 * max_threads:
                        store_row(pending.popleft().result())
                while pending:
                    store_row(pending.popleft().result())
        else:
            for row, record in enumerate(store.iterate()):
                store_row(count_row(row, record.id, draw_windows(record)))
    store.reset()

    return matrix


class FrequencyBuilder:
    """Builds frequency matrices with a fixed oligo length, fragment length and random source."""

    def __init__(self, oligo_length: int = 4,
                 fragment_length: int = 5000,
                 rng: Optional[random.Random] = None,
                 max_threads: int = 1):
        self.oligo_length = oligo_length
        self.fragment_length = fragment_length
        self.rng = rng if rng is not None else random.Random()
        self.max_threads = max_threads

    def build(self, store: SequenceStore) -> np.ndarray:
        """Restrict the store to sequences that fit a fragment and build their matrix."""
        store.set_minimum_length(self.fragment_length)
        return build_frequency_matrix(
            store, self.oligo_length, self.fragment_length,
            rng=self.rng, max_threads=self.max_threads
        )
