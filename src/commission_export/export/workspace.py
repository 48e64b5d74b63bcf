from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from commission_export.errors import CleanupError

RUN_ID_TIME_FORMAT = "%Y-%m-%d_%H-%M-%S"


def new_run_id(now: Optional[datetime] = None) -> str:
    """Timestamp plus a random suffix, so concurrent requests never share a tree."""
    stamp = (now or datetime.now()).strftime(RUN_ID_TIME_FORMAT)
    return f"{stamp}-{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class RunPaths:
    base: Path
    run_id: str
    spreadsheet_name: str = "shops-export.xlsx"
    bundle_name: str = "data-export.tar.gz"

    @property
    def root(self) -> Path:
        return Path(self.base) / self.run_id

    @property
    def csv_dir(self) -> Path:
        return self.root / "csv"

    @property
    def xlsx_dir(self) -> Path:
        return self.root / "xlsx"

    @property
    def spreadsheet(self) -> Path:
        return self.xlsx_dir / self.spreadsheet_name

    @property
    def bundle(self) -> Path:
        return self.root / self.bundle_name


def create_run(paths: RunPaths) -> RunPaths:
    paths.csv_dir.mkdir(parents=True, exist_ok=True)
    paths.xlsx_dir.mkdir(parents=True, exist_ok=True)
    return paths


def remove_tree(path: Path) -> None:
    target = Path(path)
    if not target.exists():
        return
    try:
        shutil.rmtree(target)
    except OSError as exc:
        raise CleanupError(f"Unable to clean-up tmp folder: {target}: {exc}") from exc


def cleanup_run(paths: RunPaths) -> None:
    remove_tree(paths.root)


__all__ = [
    "RunPaths",
    "cleanup_run",
    "create_run",
    "new_run_id",
    "remove_tree",
]
