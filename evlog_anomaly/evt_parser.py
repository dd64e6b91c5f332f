"""
EVT (legacy Windows event log) parser.
Reads the header and cursor records of a circular "LfLe" log and walks the
chain of log records from first_offset, stitching records that wrap past
the end of the file back to just after the header.
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum

from .byte_source import ByteSource, read_exact
from .errors import CursorNotFoundError, FormatError, UnknownRecordTypeError
from .events import LogEvent

logger = logging.getLogger(__name__)

EXTENSION = "evt"

HEADER_SIZE = 0x30
CURSOR_SIZE = 0x28
LOG_FIXED_SIZE = 0x38

HEADER_MAGIC = b"LfLe"
HEADER_VERSION = b"\x01\x00\x00\x00\x01\x00\x00\x00"
CURSOR_MAGIC = b"\x11\x11\x11\x11\x22\x22\x22\x22\x33\x33\x33\x33\x44\x44\x44\x44"

# Header flags
EVT_HEADER_DIRTY = 0x1
EVT_HEADER_WRAPPED = 0x2
EVT_HEADER_LOGFULL = 0x4
EVT_HEADER_PRIMARY = 0x8

_HEADER_FMT = "<i4siiiiiiiiii"
_CURSOR_FMT = "<i16siiIIi"
_LOG_FMT = "<i4sIIIIHHHHIIIIII"

# Bytes read per step of the backward cursor scan
_SCAN_BLOCK = 0x10000


class RecordType(Enum):
    HEADER = "header"
    CURSOR = "cursor"
    WRAPPED = "wrapped"
    LOG = "log"
    UNKNOWN = "unknown"


@dataclass
class EvtHeader:
    """0x30-byte file header at offset 0."""
    record_length: int
    magic: bytes
    major_version: int
    minor_version: int
    first_offset: int
    write_offset: int
    next_record_number: int
    first_record_number: int
    filesize: int
    flags: int
    retention_period: int
    record_length_repeat: int

    def is_dirty(self) -> bool:
        return bool(self.flags & EVT_HEADER_DIRTY)

    def is_wrapped(self) -> bool:
        return bool(self.flags & EVT_HEADER_WRAPPED)

    def is_full(self) -> bool:
        return bool(self.flags & EVT_HEADER_LOGFULL)

    def is_primary(self) -> bool:
        return bool(self.flags & EVT_HEADER_PRIMARY)


@dataclass
class EvtCursor:
    """0x28-byte end-of-file cursor record."""
    record_length: int
    magic: bytes
    first_offset: int
    write_offset: int
    next_record_number: int
    first_record_number: int
    record_length_repeat: int


@dataclass
class EvtLogRecord:
    """Fixed 0x38-byte prefix of a log record; strings, SID and data are not decoded."""
    record_length: int
    magic: bytes
    message_number: int
    date_created: int
    date_written: int
    event_id: int
    event_type: int
    string_count: int
    category: int
    reserved_flags: int
    closing_record_number: int
    string_offset: int
    sid_length: int
    sid_offset: int
    data_length: int
    data_offset: int

    def to_event(self) -> LogEvent:
        return LogEvent(self.message_number, self.date_created, self.date_written)


def _parse_header(data: bytes) -> EvtHeader:
    return EvtHeader(*struct.unpack_from(_HEADER_FMT, data, 0))


def _parse_cursor(data: bytes) -> EvtCursor:
    return EvtCursor(*struct.unpack_from(_CURSOR_FMT, data, 0))


def _parse_log_record(data: bytes) -> EvtLogRecord:
    return EvtLogRecord(*struct.unpack_from(_LOG_FMT, data, 0))


def record_type_at(source: ByteSource, offset: int, filesize: int) -> RecordType:
    """
    Classify the record at `offset` from its declared length and the magic that follows it.
    A log record whose end reaches or passes `filesize` is WRAPPED.
    """
    raw = source.read(offset, 4)
    if len(raw) < 4:
        return RecordType.UNKNOWN
    size = struct.unpack("<i", raw)[0]
    if size == HEADER_SIZE:
        if source.read(offset + 4, 12) == HEADER_MAGIC + HEADER_VERSION:
            return RecordType.HEADER
    elif size == CURSOR_SIZE:
        if source.read(offset + 4, 16) == CURSOR_MAGIC:
            return RecordType.CURSOR
    elif size >= LOG_FIXED_SIZE:
        if source.read(offset + 4, 4) == HEADER_MAGIC:
            if offset + size >= filesize:
                return RecordType.WRAPPED
            return RecordType.LOG
    return RecordType.UNKNOWN


def find_last_cursor_offset(source: ByteSource) -> int:
    """
    Scan backward from end of file for the cursor magic; return the cursor
    record offset (4 bytes before the magic) or -1.

    Fallback path only: O(file size) when the header's write_offset is stale.
    """
    size = source.total_size()
    magic_len = len(CURSOR_MAGIC)
    end = size - magic_len + 1  # exclusive bound on magic start positions
    while end > 0:
        start = max(0, end - _SCAN_BLOCK)
        chunk = source.read(start, end - start + magic_len - 1)
        idx = chunk.rfind(CURSOR_MAGIC)
        if idx >= 0:
            return start + idx - 4
        end = start
    return -1


def read_log_record(source: ByteSource, offset: int, filesize: int) -> tuple[EvtLogRecord | None, int]:
    """
    Decode the log record at `offset`.
    Returns (record, next_offset); (None, offset) when the cursor is reached.
    """
    rtype = record_type_at(source, offset, filesize)
    if rtype == RecordType.LOG:
        rec = _parse_log_record(read_exact(source, offset, LOG_FIXED_SIZE))
        return rec, offset + rec.record_length
    if rtype == RecordType.WRAPPED:
        rec_size = struct.unpack("<i", read_exact(source, offset, 4))[0]
        before_wrap = filesize - offset
        data = source.read(offset, LOG_FIXED_SIZE)
        if len(data) < LOG_FIXED_SIZE:
            data += read_exact(source, HEADER_SIZE, LOG_FIXED_SIZE - len(data))
        logger.debug("Record at 0x%X wraps (%d of %d bytes before EOF)", offset, before_wrap, rec_size)
        return _parse_log_record(data), HEADER_SIZE + (rec_size - before_wrap)
    if rtype == RecordType.CURSOR:
        return None, offset
    raise UnknownRecordTypeError(f"Record at 0x{offset:X} is not a known type")


def read_header(source: ByteSource) -> EvtHeader:
    if record_type_at(source, 0, source.total_size()) != RecordType.HEADER:
        raise FormatError("could not find header record")
    return _parse_header(read_exact(source, 0, HEADER_SIZE))


def read_cursor(source: ByteSource, header: EvtHeader) -> tuple[EvtCursor, int]:
    """Locate and decode the cursor; returns (cursor, offset)."""
    filesize = source.total_size()
    offset = header.write_offset
    if record_type_at(source, offset, filesize) != RecordType.CURSOR:
        logger.warning("Header does not point to cursor record (0x%X); searching for it", offset)
        offset = find_last_cursor_offset(source)
        if offset < 0 or record_type_at(source, offset, filesize) != RecordType.CURSOR:
            raise CursorNotFoundError("Could not find cursor record")
    return _parse_cursor(read_exact(source, offset, CURSOR_SIZE)), offset


def parse_evt(source: ByteSource) -> list[LogEvent]:
    """Decode every log record from first_record_number up to next_record_number."""
    filesize = source.total_size()
    header = read_header(source)
    cursor, _ = read_cursor(source, header)
    events: list[LogEvent] = []
    offset = header.first_offset
    for _ in range(cursor.first_record_number, cursor.next_record_number):
        rec, offset = read_log_record(source, offset, filesize)
        if rec is None:
            break
        events.append(rec.to_event())
    return events
