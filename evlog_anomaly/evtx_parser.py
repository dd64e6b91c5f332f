"""
EVTX (Windows Vista+ event log) parser.
Verifies the file header and every chunk with CRC32, then walks the event
records of each chunk and keeps their record id and creation FILETIME.
The binary XML payload is not decoded.
"""

import logging
import struct
import zlib
from dataclasses import dataclass

from .byte_source import ByteSource, read_exact
from .errors import ChecksumError, FormatError
from .events import LogEvent, filetime_to_unix

logger = logging.getLogger(__name__)

EXTENSION = "evtx"

FILE_HEADER_SIZE = 128
CHUNK_SIZE = 0x10000
CHUNK_HEADER_SIZE = 0x200
EVENT_HEADER_SIZE = 24

FILE_MAGIC = b"ElfFile\x00"
CHUNK_MAGIC = b"ElfChnk\x00"
EVENT_MAGIC = b"**\x00\x00"

# Checksummed ranges
_FILE_HEADER_CRC_LEN = 0x78
_CHUNK_HEADER_CRC_RANGES = ((0x00, 0x78), (0x80, 0x200))

_FILE_HEADER_FMT = "<8sqqqIHHHH76sII"
_CHUNK_HEADER_FMT = "<8sqqqqIIII68sI"
_EVENT_FMT = "<4sIqq"


@dataclass
class EvtxFileHeader:
    """128-byte file header."""
    magic: bytes
    oldest_chunk: int
    current_chunk: int
    next_record_number: int
    header_part_len: int
    minor_version: int
    major_version: int
    header_len: int
    chunk_count: int
    unknown: bytes
    flags: int
    checksum: int


@dataclass
class EvtxChunkHeader:
    """Leading 0x80 bytes of a 0x200-byte chunk header (string/template tables skipped)."""
    magic: bytes
    first_log_record: int
    last_log_record: int
    first_file_record: int
    last_file_record: int
    header_len: int
    offset_last: int
    offset_next: int
    data_checksum: int
    unknown: bytes
    header_checksum: int


@dataclass
class EvtxEventRecord:
    magic: bytes
    length: int
    record_id: int
    time_created: int  # FILETIME

    def to_event(self) -> LogEvent:
        ts = filetime_to_unix(self.time_created)
        return LogEvent(self.record_id, ts, ts)


def header_checksum(data: bytes) -> int:
    """CRC32 over the first 0x78 bytes of the file header."""
    return zlib.crc32(data[:_FILE_HEADER_CRC_LEN]) & 0xFFFFFFFF


def chunk_header_checksum(data: bytes) -> int:
    """CRC32 over chunk header bytes [0x00, 0x78) followed by [0x80, 0x200)."""
    crc = 0
    for start, end in _CHUNK_HEADER_CRC_RANGES:
        crc = zlib.crc32(data[start:end], crc)
    return crc & 0xFFFFFFFF


def read_file_header(source: ByteSource) -> EvtxFileHeader:
    data = read_exact(source, 0, FILE_HEADER_SIZE)
    header = EvtxFileHeader(*struct.unpack_from(_FILE_HEADER_FMT, data, 0))
    if header.magic != FILE_MAGIC:
        raise FormatError("could not find header record")
    if header_checksum(data) != header.checksum:
        raise ChecksumError("file header checksum mismatch")
    return header


def read_chunk(source: ByteSource, chunk_offset: int) -> tuple[EvtxChunkHeader, bytes]:
    """
    Read and verify one chunk.
    Returns the parsed header and the event-record bytes [0x200, offset_next).
    """
    raw_header = read_exact(source, chunk_offset, CHUNK_HEADER_SIZE)
    chunk = EvtxChunkHeader(*struct.unpack_from(_CHUNK_HEADER_FMT, raw_header, 0))
    if chunk.magic != CHUNK_MAGIC:
        raise FormatError(f"chunk header not valid at 0x{chunk_offset:X}")
    if chunk_header_checksum(raw_header) != chunk.header_checksum:
        raise ChecksumError(f"chunk header checksum mismatch at 0x{chunk_offset:X}")
    if not CHUNK_HEADER_SIZE <= chunk.offset_next <= CHUNK_SIZE:
        raise FormatError(f"chunk offset_next 0x{chunk.offset_next:X} out of range")
    data = read_exact(source, chunk_offset + CHUNK_HEADER_SIZE, chunk.offset_next - CHUNK_HEADER_SIZE)
    if zlib.crc32(data) & 0xFFFFFFFF != chunk.data_checksum:
        raise ChecksumError(f"chunk data checksum mismatch at 0x{chunk_offset:X}")
    return chunk, data


def iter_chunk_records(data: bytes) -> list[EvtxEventRecord]:
    """Walk event records packed in a verified chunk's record region."""
    records: list[EvtxEventRecord] = []
    pos = 0
    while pos < len(data):
        if pos + EVENT_HEADER_SIZE > len(data):
            raise FormatError(f"event record at chunk offset 0x{pos + CHUNK_HEADER_SIZE:X} too short")
        rec = EvtxEventRecord(*struct.unpack_from(_EVENT_FMT, data, pos))
        if rec.magic != EVENT_MAGIC:
            raise FormatError(f"event not valid at chunk offset 0x{pos + CHUNK_HEADER_SIZE:X}")
        if rec.length < EVENT_HEADER_SIZE:
            raise FormatError(f"event record length {rec.length} too short")
        records.append(rec)
        pos += rec.length
    return records


def parse_evtx(source: ByteSource) -> list[LogEvent]:
    """Decode every event record of every chunk, in chunk order."""
    header = read_file_header(source)
    events: list[LogEvent] = []
    chunk_offset = header.header_len
    for n in range(header.chunk_count):
        chunk, data = read_chunk(source, chunk_offset)
        records = iter_chunk_records(data)
        logger.debug("Chunk %d at 0x%X: %d records (%d-%d)", n, chunk_offset, len(records),
                     chunk.first_log_record, chunk.last_log_record)
        events.extend(rec.to_event() for rec in records)
        chunk_offset += CHUNK_SIZE
    return events
