"""Streaming secret masking for scope output.

``OutputMasker`` wraps a binary sink. Every chunk written through it is
scanned for each registered secret and every exact occurrence is replaced
with a placeholder before the bytes reach the sink.

A secret may be split across consecutive writes, so the masker holds back
a lookback window of at most ``len(longest secret) - 1`` bytes until it
knows no secret can start there. The window is bounded: it never grows with
the amount of output.

Limitations:
    Masking is exact substring matching only. Output that re-encodes a
    secret (base64, URL-encoding, reversing it...) is not detected unless
    the encoded form is itself registered.

Example:
    >>> sink = io.BytesIO()
    >>> masker = OutputMasker(sink, {"s3cr3t"})
    >>> masker.write(b"password is s3")
    >>> masker.write(b"cr3t\\n")
    >>> masker.close()
    >>> sink.getvalue()
    b'password is ****\\n'
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import IO, Protocol

DEFAULT_PLACEHOLDER = "****"


class BinarySink(Protocol):
    def write(self, data: bytes, /) -> object: ...

    def flush(self) -> object: ...


def build_pattern(secrets: Iterable[bytes]) -> re.Pattern[bytes] | None:
    """Compile an alternation matching any secret, longest first.

    Empty secrets are dropped; they would match everywhere.
    """
    unique = sorted({s for s in secrets if s}, key=lambda s: (-len(s), s))
    if not unique:
        return None
    return re.compile(b"|".join(re.escape(s) for s in unique))


def mask_text(text: str, secrets: Iterable[str], placeholder: str = DEFAULT_PLACEHOLDER) -> str:
    """Replace every occurrence of any secret in a complete string."""
    unique = sorted({s for s in secrets if s}, key=lambda s: (-len(s), s))
    if not unique:
        return text
    pattern = re.compile("|".join(re.escape(s) for s in unique))
    return pattern.sub(placeholder, text)


class OutputMasker:
    """Masking decorator around a binary output sink.

    Attributes:
        sink: Downstream sink receiving masked bytes
        placeholder: Replacement written instead of each secret
        lookback: Maximum number of bytes held back between writes
    """

    def __init__(
        self,
        sink: BinarySink | IO[bytes],
        secrets: Iterable[str] = (),
        placeholder: str = DEFAULT_PLACEHOLDER,
    ) -> None:
        self.sink = sink
        self.placeholder = placeholder
        self._placeholder_bytes = placeholder.encode("utf-8")
        self._secrets = frozenset(s.encode("utf-8") for s in secrets if s)
        self._pattern = build_pattern(self._secrets)
        self.lookback = max((len(s) for s in self._secrets), default=1) - 1
        self._pending = b""
        self._closed = False

    @property
    def secret_count(self) -> int:
        return len(self._secrets)

    @property
    def pending_size(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, chunk: bytes) -> int:
        """Mask a chunk and forward everything that is safe to emit.

        Returns:
            Number of input bytes accepted (always ``len(chunk)``)

        Raises:
            ValueError: If the masker is closed
        """
        if self._closed:
            raise ValueError("write to closed OutputMasker")
        if not chunk:
            return 0

        if self._pattern is None:
            self.sink.write(chunk)
            return len(chunk)

        data = self._pending + chunk
        # A secret starting before this index fits entirely inside data,
        # so matches found there are final.
        boundary = len(data) - self.lookback

        out = bytearray()
        pos = 0
        for match in self._pattern.finditer(data):
            if match.start() >= boundary:
                break
            out += data[pos : match.start()]
            out += self._placeholder_bytes
            pos = match.end()

        if pos < boundary:
            out += data[pos:boundary]
            pos = boundary
        self._pending = data[pos:]

        if out:
            self.sink.write(bytes(out))
        return len(chunk)

    def flush(self) -> None:
        """Mask and forward the held-back tail.

        Only call this when no more output of the current line can follow;
        a secret split across a flush is not masked.
        """
        if self._pending:
            tail = self._pending
            self._pending = b""
            if self._pattern is not None:
                tail = self._pattern.sub(self._placeholder_bytes, tail)
            self.sink.write(tail)
        self.sink.flush()

    def close(self) -> None:
        """Flush the tail and refuse further writes. Safe to call twice."""
        if self._closed:
            return
        self.flush()
        self._closed = True

    def __enter__(self) -> OutputMasker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class MaskingTextWriter:
    """Text stream adapter over an OutputMasker.

    Lets scope code ``print(..., file=writer)`` or hand the writer to a
    logger while keeping the masking in one place.
    """

    def __init__(self, masker: OutputMasker, encoding: str = "utf-8") -> None:
        self.masker = masker
        self.encoding = encoding

    def write(self, text: str) -> int:
        self.masker.write(text.encode(self.encoding, errors="replace"))
        return len(text)

    def writelines(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.write(line)

    def flush(self) -> None:
        # Keep the lookback window; a later write may complete a secret
        self.masker.sink.flush()

    @property
    def closed(self) -> bool:
        return self.masker.closed
