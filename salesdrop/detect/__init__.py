from .reader import (
    EmptyFileError,
    FileLockedError,
    FileType,
    ParseError,
    UnsupportedFormatError,
    detect_file_type,
    parse_file,
    wait_for_file,
)

__all__ = [
    "EmptyFileError",
    "FileLockedError",
    "FileType",
    "ParseError",
    "UnsupportedFormatError",
    "detect_file_type",
    "parse_file",
    "wait_for_file",
]
