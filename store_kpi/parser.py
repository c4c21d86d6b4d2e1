# Copyright © 2025 Novasama Technologies GmbH
# SPDX-License-Identifier: Apache-2.0

"""
Delimited report parsing.

Turns a raw byte stream (CSV or TSV, optionally gzip-compressed) into a header
plus a lazy sequence of records keyed by header label. The stream is read in
chunks and decoded incrementally, so large exports are never held in memory
as text.
"""

import codecs
import csv
import gzip
import logging
import zlib
from typing import BinaryIO, Dict, Iterable, Iterator, List, Optional

from .errors import FormatError

LOG = logging.getLogger("store_kpi.parser")

GZIP_MAGIC = b"\x1f\x8b"
CHUNK_SIZE = 64 * 1024

_READ_ERRORS = (OSError, EOFError, UnicodeDecodeError, zlib.error, csv.Error)


class _PrefixedStream:
    """Replays bytes that were already consumed for sniffing, then the rest."""

    def __init__(self, prefix: bytes, stream):
        self._prefix = prefix
        self._stream = stream

    def read(self, size=-1):
        if not self._prefix:
            return self._stream.read(size)
        if size is None or size < 0:
            data = self._prefix + self._stream.read()
            self._prefix = b""
            return data
        data = self._prefix[:size]
        self._prefix = self._prefix[size:]
        if len(data) < size:
            data += self._stream.read(size - len(data))
        return data


def _read_exact(stream, size: int) -> bytes:
    data = b""
    while len(data) < size:
        chunk = stream.read(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def _decoded_chunks(stream, compressed: Optional[bool]) -> Iterator[str]:
    """Yield decoded text chunks, handling gzip and the byte-order mark."""
    head = _read_exact(stream, len(GZIP_MAGIC))
    stream = _PrefixedStream(head, stream)
    if compressed is None:
        compressed = head == GZIP_MAGIC
    if compressed:
        stream = gzip.GzipFile(fileobj=stream, mode="rb")

    chunk = stream.read(CHUNK_SIZE)
    # Play Console exports are UTF-16; everything else is UTF-8, BOM optional
    if chunk[:2] in (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE):
        encoding = "utf-16"
    else:
        encoding = "utf-8-sig"
    decoder = codecs.getincrementaldecoder(encoding)()

    while chunk:
        text = decoder.decode(chunk)
        if text:
            yield text
        chunk = stream.read(CHUNK_SIZE)
    tail = decoder.decode(b"", final=True)
    if tail:
        yield tail


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _lines(chunks: Iterable[str]) -> Iterator[str]:
    # Line endings are kept so csv can reassemble quoted multi-line cells
    pending = ""
    for text in chunks:
        pending += text
        # A trailing \r may be the first half of a \r\n split across chunks
        carry = "\r" if pending.endswith("\r") else ""
        if carry:
            pending = pending[:-1]
        parts = _normalize_newlines(pending).split("\n")
        pending = parts.pop() + carry
        for part in parts:
            yield part + "\n"
    if pending:
        yield _normalize_newlines(pending)


def _cell_rows(stream, delimiter: str, compressed: Optional[bool], name: str) -> Iterator[List[str]]:
    """Yield trimmed, non-blank cell lists; read failures become FormatError."""
    try:
        reader = csv.reader(_lines(_decoded_chunks(stream, compressed)), delimiter=delimiter)
        for row in reader:
            cells = [cell.strip() for cell in row]
            if not any(cells):
                continue
            yield cells
    except _READ_ERRORS as e:
        raise FormatError(f"Cannot read {name or 'stream'}: {e}") from e


class RecordTable:
    """
    Header plus a single-use iterator of records.

    Each record maps header label to cell value. Missing cells read as empty
    strings, cells beyond the header are dropped, and a repeated label keeps
    its first column.
    """

    def __init__(self, header: List[str], rows: Iterator[List[str]], name: str = ""):
        self.header = header
        self.name = name
        self._rows = rows
        self._positions = []
        seen = set()
        for index, label in enumerate(header):
            if label not in seen:
                seen.add(label)
                self._positions.append((label, index))

    def __iter__(self) -> Iterator[Dict[str, str]]:
        for cells in self._rows:
            width = len(cells)
            yield {
                label: (cells[index] if index < width else "")
                for label, index in self._positions
            }


def parse_records(
    stream: BinaryIO,
    delimiter: str = ",",
    compressed: Optional[bool] = None,
    name: str = "",
) -> RecordTable:
    """
    Parse a delimited byte stream into a RecordTable.

    Args:
        stream: Object with a ``read(size)`` method returning bytes
        delimiter: Field delimiter, ``","`` or ``"\\t"``
        compressed: True for gzip, False for plain, None to sniff the magic bytes
        name: Source name used in error messages

    Returns:
        RecordTable whose header has already been read

    Raises:
        FormatError: If the stream holds no header row or cannot be decoded
    """
    rows = _cell_rows(stream, delimiter, compressed, name)
    header = next(rows, None)
    if header is None:
        raise FormatError(f"No header row in {name or 'stream'}")

    if LOG.isEnabledFor(logging.DEBUG):
        LOG.debug("Header of %s: %s", name or "stream", header)

    return RecordTable(header, rows, name)
