"""
Bounded, binary-aware capture of a process output stream.
"""

from workspace_sandbox.filesystem.content import DEFAULT_BINARY_SAMPLE_SIZE

BINARY_PLACEHOLDER = "[Binary Content]"


class OutputCollector:
    """
    Accumulates bytes from one output stream up to a size limit.

    Only the first ``sample_size`` bytes are inspected for NUL. Once the
    stream is classified as binary further bytes are discarded and the
    collected text is reported as ``[Binary Content]``. Bytes past
    ``max_bytes`` are dropped and mark the output as truncated.

    Usage:
        collector = OutputCollector(max_bytes=1024)
        collector.write(b"hello\\n")
        print(collector.text(), collector.truncated)
    """

    def __init__(self, max_bytes: int, sample_size: int = DEFAULT_BINARY_SAMPLE_SIZE):
        self.max_bytes = max_bytes
        self.sample_size = sample_size
        self.truncated = False
        self.is_binary = False
        self._buffer = bytearray()
        self._sampled = 0

    def write(self, chunk: bytes) -> int:
        """Consume a chunk; always reports the whole chunk as consumed."""
        if not chunk or self.is_binary:
            return len(chunk)

        if self._sampled < self.sample_size:
            window = chunk[: self.sample_size - self._sampled]
            self._sampled += len(window)
            if b"\x00" in window:
                self.is_binary = True
                self._buffer.clear()
                return len(chunk)

        remaining = self.max_bytes - len(self._buffer)
        if remaining <= 0:
            self.truncated = True
        elif len(chunk) > remaining:
            self._buffer.extend(chunk[:remaining])
            self.truncated = True
        else:
            self._buffer.extend(chunk)
        return len(chunk)

    def text(self) -> str:
        """Return the collected output decoded as UTF-8 (invalid bytes replaced)."""
        if self.is_binary:
            return BINARY_PLACEHOLDER
        return self._buffer.decode("utf-8", errors="replace")

    def __len__(self) -> int:
        return len(self._buffer)
