"""
Content guards shared by the file tools.
"""

from workspace_sandbox.exceptions import FileTooLargeError

DEFAULT_BINARY_SAMPLE_SIZE = 8000

# UTF-16 and UTF-32 text legitimately contains NUL bytes
_TEXT_BOMS = (
    b"\xff\xfe\x00\x00",
    b"\x00\x00\xfe\xff",
    b"\xff\xfe",
    b"\xfe\xff",
)


def is_binary_content(data: bytes, sample_size: int = DEFAULT_BINARY_SAMPLE_SIZE) -> bool:
    """
    Detect binary content the way Git does: a NUL byte in the leading sample.

    Args:
        data: Raw bytes to inspect
        sample_size: Number of leading bytes to scan

    Returns:
        True if the data should be treated as binary
    """
    if not data:
        return False
    if data.startswith(_TEXT_BOMS):
        return False
    return b"\x00" in data[:sample_size]


def check_size(path: str, size: int, limit: int) -> None:
    """Raise FileTooLargeError if ``size`` exceeds ``limit``."""
    if size > limit:
        raise FileTooLargeError(path, size, limit)
