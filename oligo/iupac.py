"""
IUPAC-aware nucleotide comparison and complementation.

Comparisons resolve the first nucleotide to the set of codes it is compatible
with and test whether the second nucleotide belongs to that set. Gap ('-' and
'.') and unknown ('?') markers only match themselves.
"""

import logging

from Bio.Seq import complement as bio_complement
from Bio.Seq import reverse_complement as bio_reverse_complement

from oligo.exceptions import FormatError


# Codes each nucleotide is considered equal to, keyed by lowercase code
COMPATIBLE_CODES = {
    'a': 'arwmdhvn',         # Adenine
    'c': 'cysmbhvn',         # Cytosine
    'g': 'grskbdvn',         # Guanine
    't': 'tywkbdhn',         # Thymine
    'r': 'agrn',             # A or G
    'y': 'ctyn',             # C or T
    's': 'gcsn',             # G or C
    'w': 'atwn',             # A or T
    'k': 'gtkn',             # G or T
    'm': 'acmn',             # A or C
    'b': 'cgtbn',            # C or G or T (not A)
    'd': 'agtdn',            # A or G or T (not C)
    'h': 'acthn',            # A or C or T (not G)
    'v': 'acgvn',            # A or C or G (not T)
    'n': 'acgtryswkmbdhvn',  # Any nucleotide
    '.': '.-',               # Gap
    '-': '.-',               # Gap
    '?': '?',                # Unknown
}

UNAMBIGUOUS_NUCLEOTIDES = frozenset('acgtACGT')


def compatible_codes(code: str) -> str:
    """Return the lowercase codes that compare equal to the given code.

    Raises:
        FormatError: If code is not an IUPAC nucleotide, gap or unknown marker.
    """
    try:
        return COMPATIBLE_CODES[code.lower()]
    except KeyError:
        raise FormatError(f"Unrecognized nucleotide code: {code!r}") from None


def nucleotide_equals(nucleotide_a: str, nucleotide_b: str) -> bool:
    """
    Test whether two nucleotides are equal, taking IUPAC ambiguity codes
    into account. Case is ignored.

    An unrecognized code in nucleotide_a is reported as a warning and never
    matches. Anything other than a single character in nucleotide_b never
    matches either.
    """
    try:
        codes = compatible_codes(nucleotide_a)
    except FormatError as e:
        logging.warning(str(e))
        return False
    return len(nucleotide_b) == 1 and nucleotide_b.lower() in codes


def sequence_equals(sequence_a: str, sequence_b: str) -> bool:
    """Test whether two sequences are equal position by position under IUPAC rules.

    Sequences of different length are never equal.
    """
    if len(sequence_a) != len(sequence_b):
        return False
    return all(nucleotide_equals(a, b) for a, b in zip(sequence_a, sequence_b))


def is_unambiguous(sequence: str) -> bool:
    """True if the sequence only contains A, C, G and T (either case)."""
    return all(base in UNAMBIGUOUS_NUCLEOTIDES for base in sequence)


def _warn_unrecognized(sequence: str) -> None:
    for base in set(sequence):
        if base.lower() not in COMPATIBLE_CODES:
            logging.warning(f"Unrecognized nucleotide code: {base!r}")


def complement(sequence: str) -> str:
    """
    Complement a strand of DNA, preserving case.

    ie. "ATCGC" -> "TAGCG"

    Characters without a complement are copied unchanged and reported as a
    warning.
    """
    _warn_unrecognized(sequence)
    return bio_complement(sequence)


def reverse_complement(sequence: str) -> str:
    """
    Reverse complement a strand of DNA.

    ie. "ATCGC" -> "GCGAT"
    """
    _warn_unrecognized(sequence)
    return bio_reverse_complement(sequence)
