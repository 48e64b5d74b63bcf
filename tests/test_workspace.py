from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

import pytest

from commission_export.errors import CleanupError
from commission_export.export import workspace
from commission_export.export.workspace import (
    RunPaths,
    cleanup_run,
    create_run,
    new_run_id,
    remove_tree,
)


def test_run_ids_are_timestamped_and_unique() -> None:
    now = datetime(2024, 5, 6, 7, 8, 9)

    first = new_run_id(now)
    second = new_run_id(now)

    assert re.fullmatch(r"2024-05-06_07-08-09-[0-9a-f]{6}", first)
    assert first != second


def test_run_paths_follow_layout(tmp_path: Path) -> None:
    paths = RunPaths(base=tmp_path, run_id="run-1")

    assert paths.root == tmp_path / "run-1"
    assert paths.csv_dir == tmp_path / "run-1" / "csv"
    assert paths.spreadsheet == tmp_path / "run-1" / "xlsx" / "shops-export.xlsx"
    assert paths.bundle == tmp_path / "run-1" / "data-export.tar.gz"


def test_create_and_cleanup_run(tmp_path: Path) -> None:
    paths = create_run(RunPaths(base=tmp_path, run_id="run-2"))
    assert paths.csv_dir.is_dir()
    assert paths.xlsx_dir.is_dir()
    (paths.csv_dir / "a-data.csv").write_text("x", encoding="utf-8")

    cleanup_run(paths)

    assert not paths.root.exists()
    cleanup_run(paths)


def test_remove_tree_failure_raises_cleanup_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "stuck"
    target.mkdir()

    def _fail(path):
        raise PermissionError(f"busy: {path}")

    monkeypatch.setattr(workspace.shutil, "rmtree", _fail)

    with pytest.raises(CleanupError):
        remove_tree(target)
