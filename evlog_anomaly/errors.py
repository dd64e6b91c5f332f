"""Exceptions raised while decoding EVT / EVTX containers."""


class LogParseError(Exception):
    """Base for every error that makes one log file undecodable."""


class FormatError(LogParseError):
    """Magic mismatch, bad checksum, short record or otherwise malformed layout."""


class UnknownRecordTypeError(FormatError):
    """EVT record at the expected offset is neither a log record nor the cursor."""


class CursorNotFoundError(FormatError):
    """EVT cursor record missing at write_offset and not found by backward scan."""


class ChecksumError(FormatError):
    """EVTX header or chunk CRC32 does not match the stored value."""


class TruncatedReadError(LogParseError):
    """Byte source returned fewer bytes than a fixed-size structure needs."""

    def __init__(self, offset: int, wanted: int, got: int):
        super().__init__(f"short read at 0x{offset:X}: wanted {wanted} bytes, got {got}")
        self.offset = offset
        self.wanted = wanted
        self.got = got


class ConfigError(Exception):
    """Invalid scan configuration file."""
