#!/usr/bin/env python3
"""Diagnostic script: prints the header, cursor and chunk structures of an EVT/EVTX file."""
import sys
from pathlib import Path

from . import evt_parser, evtx_parser
from .byte_source import FileByteSource
from .errors import LogParseError
from .events import unix_to_iso
from .log_processor import select_parser


def dump_evt(source: FileByteSource) -> None:
    header = evt_parser.read_header(source)
    print("EVT HEADER")
    print(f"  Record length:     0x{header.record_length:X}")
    print(f"  Magic:             {header.magic!r}")
    print(f"  First offset:      0x{header.first_offset:X}")
    print(f"  Write offset:      0x{header.write_offset:X}")
    print(f"  Next record:       {header.next_record_number}")
    print(f"  First record:      {header.first_record_number}")
    print(f"  Filesize:          0x{header.filesize:X} (actual 0x{source.total_size():X})")
    print(f"  Flags:             0x{header.flags:X}  dirty={header.is_dirty()} wrapped={header.is_wrapped()} "
          f"full={header.is_full()} primary={header.is_primary()}")
    print(f"  Retention:         {header.retention_period}")
    print()

    cursor, offset = evt_parser.read_cursor(source, header)
    print(f"EVT CURSOR at 0x{offset:X}" + ("" if offset == header.write_offset else "  (found by scan)"))
    print(f"  First offset:      0x{cursor.first_offset:X}")
    print(f"  Write offset:      0x{cursor.write_offset:X}")
    print(f"  Next record:       {cursor.next_record_number}")
    print(f"  First record:      {cursor.first_record_number}")
    print()

    for event in evt_parser.parse_evt(source)[:30]:
        print(f"  Rec#{event.event_id:>8}  created={event.created_iso()}  written={event.written_iso()}")


def dump_evtx(source: FileByteSource) -> None:
    header = evtx_parser.read_file_header(source)
    print("EVTX HEADER")
    print(f"  Oldest chunk:      {header.oldest_chunk}")
    print(f"  Current chunk:     {header.current_chunk}")
    print(f"  Next record:       {header.next_record_number}")
    print(f"  Version:           {header.major_version}.{header.minor_version}")
    print(f"  Header length:     0x{header.header_len:X}")
    print(f"  Chunk count:       {header.chunk_count}")
    print(f"  Flags:             0x{header.flags:X}")
    print(f"  Checksum:          0x{header.checksum:08X}")

    chunk_offset = header.header_len
    for n in range(header.chunk_count):
        print()
        try:
            chunk, data = evtx_parser.read_chunk(source, chunk_offset)
        except LogParseError as e:
            print(f"CHUNK {n} at 0x{chunk_offset:X}: INVALID ({e})")
            chunk_offset += evtx_parser.CHUNK_SIZE
            continue
        records = evtx_parser.iter_chunk_records(data)
        print(f"CHUNK {n} at 0x{chunk_offset:X}")
        print(f"  Log records:       {chunk.first_log_record} - {chunk.last_log_record}")
        print(f"  File records:      {chunk.first_file_record} - {chunk.last_file_record}")
        print(f"  Last/next offset:  0x{chunk.offset_last:X} / 0x{chunk.offset_next:X}")
        print(f"  Records parsed:    {len(records)}")
        if records:
            first, last = records[0].to_event(), records[-1].to_event()
            print(f"  Time span:         {unix_to_iso(first.created)} .. {unix_to_iso(last.created)}")
        chunk_offset += evtx_parser.CHUNK_SIZE


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) < 1:
        print("Usage: python -m evlog_anomaly.diagnose <path_to_evt_or_evtx>")
        return 1
    path = Path(argv[0])
    if not path.is_file():
        print(f"File not found: {path}")
        return 1
    selected = select_parser(path.name)
    if selected is None:
        print(f"Not an .evt/.evtx file: {path.name}")
        return 1
    log_format, _ = selected
    with FileByteSource.open(path) as source:
        try:
            if log_format == evt_parser.EXTENSION:
                dump_evt(source)
            else:
                dump_evtx(source)
        except LogParseError as e:
            print(f"ERROR: {type(e).__name__}: {e}")
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
