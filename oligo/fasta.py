"""
Indexed reader for FASTA formatted sequence files.

The file is scanned once when a SequenceStore is created, recording the byte
offset, identifier and sequence length of every record. Sequence data is only
decoded when records are iterated or fetched by offset, so large files can be
filtered by length without holding every sequence in memory.
"""

import io
import logging
import os
from typing import BinaryIO, Iterator, List, Optional, Tuple

from Bio.Seq import Seq
from Bio.SeqIO.FastaIO import SimpleFastaParser
from Bio.SeqRecord import SeqRecord

from oligo.exceptions import FileAccessError, FormatError, ParameterError
from oligo.types import IndexEntry

MARKER = b'>'


def chomp(line: bytes) -> bytes:
    """Remove line-feed and carriage-return characters from the end of a line."""
    return line.rstrip(b'\r\n')


def _decode(data: bytes, offset: int) -> str:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise FormatError(f"Record at byte {offset} is not valid text: {e}") from e


def split_title(title: str, offset: int) -> Tuple[str, str]:
    """
    Split a header title into identifier and description.

    The identifier is the first whitespace-delimited token after the marker,
    the description is the remainder of the line.

    Raises:
        FormatError: If the header carries no identifier
    """
    parts = title.split(None, 1)
    if not parts:
        raise FormatError(f"Record header at byte {offset} has no identifier")
    identifier = parts[0]
    description = parts[1] if len(parts) > 1 else ''
    return identifier, description


def parse_header(line: bytes, offset: int) -> Tuple[str, str]:
    return split_title(_decode(chomp(line)[len(MARKER):], offset), offset)


def sequence_line_length(line: bytes, offset: int) -> int:
    """Number of residues on a sequence line, counted the way SimpleFastaParser joins them."""
    if not line.isascii():
        raise FormatError(f"Record at byte {offset} has non-ASCII sequence data")
    return len(line.rstrip().replace(b' ', b''))


def parse_record(data: bytes, offset: int) -> SeqRecord:
    """Decode the raw bytes of exactly one record, header line included."""
    if not data.startswith(MARKER):
        raise FormatError(f"Not a FASTA formatted record at byte {offset}: {data[:60]!r}")

    title, sequence = next(SimpleFastaParser(io.StringIO(_decode(data, offset))))
    identifier, description = split_title(title, offset)
    return SeqRecord(Seq(sequence), id=identifier, name=identifier, description=description)


def scan_index(handle: BinaryIO) -> Tuple[IndexEntry, ...]:
    """Record identifier, length and header offset for every record in handle."""
    entries = []
    identifier = None
    record_offset = 0
    length = 0
    position = 0

    for line in handle:
        if line.startswith(MARKER):
            if identifier is not None:
                entries.append(IndexEntry(identifier, length, record_offset))
            identifier, _ = parse_header(line, position)
            record_offset = position
            length = 0
        elif identifier is not None:
            length += sequence_line_length(line, record_offset)
        position += len(line)

    if identifier is not None:
        entries.append(IndexEntry(identifier, length, record_offset))

    return tuple(entries)


class SequenceStore:
    """
    Random-access view over the records of a FASTA file.

    The index is built once and never changes; the minimum length is a filter
    applied when records are counted, listed or iterated.
    """

    def __init__(self, path: str):
        self.path = path
        self._minimum_length = 1
        self._current = 0
        self._handle: Optional[BinaryIO] = None

        try:
            with open(path, 'rb') as handle:
                self._index = scan_index(handle)
                size = os.fstat(handle.fileno()).st_size
        except OSError as e:
            raise FileAccessError(f"Unable to read sequence file {path}: {e}") from e

        if not self._index:
            raise FormatError(f"No FASTA records found in {path}")

        # Each record runs from its header to the next header or EOF
        offsets = [entry.offset for entry in self._index]
        self._record_ends = dict(zip(offsets, offsets[1:] + [size]))

        logging.info(f"Indexed {len(self._index)} sequences from {path}")

    @classmethod
    def build(cls, path: str) -> 'SequenceStore':
        return cls(path)

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self) -> Iterator[SeqRecord]:
        return self.iterate()

    def __enter__(self) -> 'SequenceStore':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @property
    def index(self) -> Tuple[IndexEntry, ...]:
        return self._index

    @property
    def minimum_length(self) -> int:
        return self._minimum_length

    def set_minimum_length(self, length: int) -> None:
        """Only retain sequences with at least this many nucleotides."""
        if length < 0:
            raise ParameterError(f"Minimum length must not be negative, got {length}")
        self._minimum_length = length
        logging.debug(f"Minimum sequence length set to {length}: "
                      f"{self.retained_count()} of {len(self._index)} sequences retained")

    def retained_entries(self) -> List[IndexEntry]:
        return [entry for entry in self._index if entry.length >= self._minimum_length]

    def retained_count(self) -> int:
        return sum(1 for entry in self._index if entry.length >= self._minimum_length)

    def retained_identifiers(self) -> List[str]:
        return [entry.identifier for entry in self.retained_entries()]

    def retained_lengths(self) -> List[int]:
        return [entry.length for entry in self.retained_entries()]

    def next_sequence(self) -> Optional[SeqRecord]:
        """Decode the next retained record, or return None when exhausted."""
        # Skip sequences that are not long enough
        while (self._current < len(self._index) and
               self._index[self._current].length < self._minimum_length):
            self._current += 1

        if self._current >= len(self._index):
            return None

        entry = self._index[self._current]
        try:
            record = self._read_record(self._open_handle(), entry.offset)
        except OSError as e:
            raise FileAccessError(f"Unable to read {entry.identifier} from {self.path}: {e}") from e

        self._current += 1
        return record

    def iterate(self) -> Iterator[SeqRecord]:
        """
        Yield retained records in file order, continuing from the current
        position. Call reset() to start again from the first record.
        """
        while True:
            record = self.next_sequence()
            if record is None:
                return
            yield record

    def reset(self) -> None:
        """Rewind iteration to the first record; the index is kept."""
        self.close()
        self._current = 0

    def fetch_at(self, offset: int) -> SeqRecord:
        """Decode the record whose header starts at offset.

        Uses its own file handle, so the iteration position is not affected.
        """
        try:
            with open(self.path, 'rb') as handle:
                return self._read_record(handle, offset)
        except OSError as e:
            raise FileAccessError(f"Unable to read offset {offset} from {self.path}: {e}") from e

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def _open_handle(self) -> BinaryIO:
        if self._handle is None:
            self._handle = open(self.path, 'rb')
        return self._handle

    def _read_record(self, handle: BinaryIO, offset: int) -> SeqRecord:
        if offset not in self._record_ends:
            raise FormatError(f"No record starts at byte {offset} of {self.path}")
        handle.seek(offset)
        return parse_record(handle.read(self._record_ends[offset] - offset), offset)
