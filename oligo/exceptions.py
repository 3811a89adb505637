"""Error types raised by the oligo pipeline."""


class OligoError(Exception):
    """Base class for all errors raised by oligo."""


class FileAccessError(OligoError, OSError):
    """The sequence file is missing or cannot be read."""


class FormatError(OligoError, ValueError):
    """Malformed FASTA input or an unrecognized nucleotide code."""


class ParameterError(OligoError, ValueError):
    """Oligo, fragment or cluster parameters that cannot be satisfied."""


class StructuralError(OligoError, ValueError):
    """A merge trace that does not describe a single rooted tree."""
