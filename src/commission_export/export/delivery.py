from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Iterator, Optional, Protocol

from commission_export.errors import SheetWriteError
from commission_export.utils.io import write_bytes_atomic

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Attachment:
    path: Path
    filename: str
    content_type: str = "application/gzip"

    @property
    def length(self) -> int:
        return self.path.stat().st_size

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Description": "File Transfer",
            "Content-Type": self.content_type,
            "Content-Disposition": f'attachment; filename="{self.filename}"',
            "Expires": "0",
            "Cache-Control": "must-revalidate",
            "Content-Length": str(self.length),
        }

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        with self.path.open("rb") as handle:
            while True:
                chunk = handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk


class Delivery(Protocol):
    def deliver(self, attachment: Attachment) -> None:  # pragma: no cover - interface
        ...


class FileDelivery:
    """Copy the bundle to ``dest`` (a file, or a directory to drop it into)."""

    def __init__(self, dest: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.dest = Path(dest)
        self.chunk_size = chunk_size
        self.delivered_to: Optional[Path] = None

    def deliver(self, attachment: Attachment) -> None:
        target = self.dest / attachment.filename if self.dest.is_dir() else self.dest
        try:
            write_bytes_atomic(target, attachment.iter_chunks(self.chunk_size))
        except OSError as exc:
            raise SheetWriteError(f"Unable to deliver bundle to {target}: {exc}") from exc
        self.delivered_to = target


class StreamDelivery:
    """Write the bundle to a binary stream, flushing after every chunk.

    ``on_headers`` receives the download headers before the first byte is
    written, for sinks that need to announce the attachment (for example an
    HTTP response).
    """

    def __init__(
        self,
        stream: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_headers: Optional[Callable[[Dict[str, str]], None]] = None,
    ) -> None:
        self.stream = stream
        self.chunk_size = chunk_size
        self.on_headers = on_headers
        self.bytes_sent = 0

    def deliver(self, attachment: Attachment) -> None:
        if self.on_headers is not None:
            self.on_headers(attachment.headers())
        for chunk in attachment.iter_chunks(self.chunk_size):
            self.stream.write(chunk)
            self.stream.flush()
            self.bytes_sent += len(chunk)


__all__ = [
    "Attachment",
    "DEFAULT_CHUNK_SIZE",
    "Delivery",
    "FileDelivery",
    "StreamDelivery",
]
