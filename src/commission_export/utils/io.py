from __future__ import annotations

import csv
import os
import tempfile
from pathlib import Path
from typing import Iterable, Sequence, Union

PathLike = Union[str, Path]


def write_csv_rows_atomic(path: PathLike, rows: Iterable[Sequence[object]]) -> int:
    """Stream ``rows`` into ``path`` and return how many rows were written.

    Rows are written one at a time, so memory stays flat however long the
    iterable is. The file only appears at ``path`` once every row made it to
    disk; a failure part-way removes the temporary file.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with _tempfile(target, suffix=".csv") as tmp_path:
        with open(tmp_path, "w", encoding="utf-8", newline="") as fp:
            writer = csv.writer(fp, lineterminator="\n")
            for row in rows:
                writer.writerow(row)
                count += 1
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_path, target)
    return count


def write_bytes_atomic(path: PathLike, chunks: Iterable[bytes]) -> int:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    written = 0
    with _tempfile(target) as tmp_path:
        with open(tmp_path, "wb") as fp:
            for chunk in chunks:
                fp.write(chunk)
                written += len(chunk)
            fp.flush()
            os.fsync(fp.fileno())
        os.replace(tmp_path, target)
    return written


class _AtomicTempFile:
    def __init__(self, temp_path: Path):
        self.temp_path = temp_path

    def __enter__(self) -> Path:
        return self.temp_path

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and self.temp_path.exists():
            self.temp_path.unlink(missing_ok=True)


def _tempfile(target: Path, suffix: str = "") -> _AtomicTempFile:
    fd, tmp = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.tmp-",
        suffix=suffix,
    )
    os.close(fd)
    return _AtomicTempFile(Path(tmp))


__all__ = ["write_bytes_atomic", "write_csv_rows_atomic"]
