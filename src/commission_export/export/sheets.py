from __future__ import annotations

import csv
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence, Set, Tuple

from commission_export.errors import SheetWriteError
from commission_export.utils.io import write_csv_rows_atomic

_LABEL_CLEAN_RE = re.compile(r"[^A-Za-z0-9_ ]")
_FILENAME_CLEAN_RE = re.compile(r"[^A-Za-z0-9_-]")
SHEET_SUFFIX = "-data.csv"


@dataclass(frozen=True)
class SheetArtifact:
    shop_id: int
    shop_name: str
    label: str
    path: Path
    rows: int


def sheet_label(name: str) -> str:
    """Make ``name`` safe to pass as a single process argument."""
    return _LABEL_CLEAN_RE.sub(" ", name)


def sheet_filename(name: str) -> str:
    stem = _FILENAME_CLEAN_RE.sub("_", name).strip("_") or "shop"
    return f"{stem}{SHEET_SUFFIX}"


class SheetNamer:
    """Hands out unique labels and file names for the shops of one run.

    Two shop names can sanitize to the same label or file name; the later
    shop gets its id appended (then a counter, if that is taken too) instead
    of overwriting the earlier sheet.
    """

    def __init__(self) -> None:
        self._labels: Set[str] = set()
        self._files: Set[str] = set()

    def assign(self, shop_id: int, shop_name: str) -> Tuple[str, str]:
        label = sheet_label(shop_name)
        if not label.strip():
            label = f"Shop {shop_id}"
        label = _first_free(label, " ", shop_id, lambda candidate: candidate, self._labels)

        stem = sheet_filename(shop_name)[: -len(SHEET_SUFFIX)]
        filename = _first_free(stem, "-", shop_id, sheet_filename, self._files)

        self._labels.add(label.casefold())
        self._files.add(filename.casefold())
        return label, filename


def _first_free(
    base: str,
    sep: str,
    shop_id: int,
    render: Callable[[str], str],
    taken: Set[str],
) -> str:
    candidate = render(base)
    attempt = 1
    while candidate.casefold() in taken:
        suffix = f"{shop_id}" if attempt == 1 else f"{shop_id}{sep}{attempt}"
        candidate = render(f"{base}{sep}{suffix}")
        attempt += 1
    return candidate


def write_sheet(path: Path, rows: Iterable[Sequence[object]]) -> int:
    """Write ``rows`` (header first) to ``path``; return the data row count."""
    try:
        written = write_csv_rows_atomic(path, rows)
    except (OSError, csv.Error) as exc:
        raise SheetWriteError(f"Failed to write sheet {path}: {exc}") from exc
    return max(written - 1, 0)


__all__ = [
    "SHEET_SUFFIX",
    "SheetArtifact",
    "SheetNamer",
    "sheet_filename",
    "sheet_label",
    "write_sheet",
]
