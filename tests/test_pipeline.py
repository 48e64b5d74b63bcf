from __future__ import annotations

import io
import shutil
import tarfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from commission_export.errors import (
    CleanupError,
    CompressionError,
    ConversionError,
    EmptyResultError,
    ExportCancelled,
    QueryError,
    SheetWriteError,
)
from commission_export.export import pipeline
from commission_export.export.cancel import CancelToken
from commission_export.export.commissions import HEADER
from commission_export.export.delivery import Attachment, FileDelivery
from commission_export.export.pipeline import export_owner
from commission_export.utils.proc import ToolResult

openpyxl = pytest.importorskip("openpyxl")

SHOP_NAMES = ["Corner Market", 'Joe\'s "Best" Shop/2024', "Harbor"]
EXPECTED_LABELS = ["Corner Market", "Joe s  Best  Shop 2024", "Harbor"]


@pytest.fixture
def owner(store) -> int:
    store.owner(1)
    store.owner(2)
    store.product(1, "Ceramic Mug", "7.25")
    for shop_id, name in enumerate(SHOP_NAMES, start=1):
        store.shop(shop_id, name, 1, code=f"C{shop_id}", email=f"s{shop_id}@example.com")
    for day in (3, 1, 2):
        store.commission(
            1,
            1,
            datetime(2024, 1, day),
            quantity=day,
            customers=[(day, [("RATING", str(day)), ("DESCRIPTION", "ok")])],
        )
    store.many_commissions(3, 1, 12, datetime(2024, 2, 1))
    return 1


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"


class FakeRunner:
    def __init__(self, returncode: int = 0, output: str = "", create: bool = False) -> None:
        self.returncode = returncode
        self.output = output
        self.create = create
        self.calls: List[List[str]] = []

    def __call__(self, argv: Sequence[str], timeout_s: Optional[float]) -> ToolResult:
        argv = list(argv)
        self.calls.append(argv)
        if self.create and "--output" in argv:
            Path(argv[argv.index("--output") + 1]).write_bytes(b"fake workbook")
        return ToolResult(returncode=self.returncode, output=self.output)


class FailingDelivery:
    def deliver(self, attachment: Attachment) -> None:
        raise SheetWriteError("client went away")


def _assert_no_run_state(work_dir: Path) -> None:
    assert list(work_dir.glob("*")) == []


def _bundle_workbook(bundle: Path):
    with tarfile.open(bundle, "r:gz") as archive:
        assert archive.getnames() == ["shops-export.xlsx"]
        member = archive.extractfile("shops-export.xlsx")
        assert member is not None
        payload = member.read()
    return openpyxl.load_workbook(io.BytesIO(payload), read_only=True)


def _sheet_values(workbook) -> dict:
    return {
        name: [list(row) for row in workbook[name].iter_rows(values_only=True)]
        for name in workbook.sheetnames
    }


def test_export_bundles_one_sheet_per_shop(
    conn, owner, make_config, tmp_path, work_dir
) -> None:
    out = tmp_path / "owner-1.tar.gz"

    result = export_owner(conn, owner, make_config(), FileDelivery(out), run_id="run-ok")

    assert [sheet.label for sheet in result.sheets] == EXPECTED_LABELS
    assert [sheet.rows for sheet in result.sheets] == [3, 0, 12]
    assert result.bundle_bytes == out.stat().st_size
    _assert_no_run_state(work_dir)

    workbook = _bundle_workbook(out)
    try:
        values = _sheet_values(workbook)
    finally:
        workbook.close()
    assert list(values) == EXPECTED_LABELS
    for rows in values.values():
        assert rows[0] == list(HEADER)
    assert len(values["Joe s  Best  Shop 2024"]) == 1
    assert len(values["Harbor"]) == 13
    corner = values["Corner Market"]
    assert [row[0] for row in corner[1:]] == ["01/01/2024", "02/01/2024", "03/01/2024"]
    assert corner[1][4] == "7.25"
    assert corner[1][9] == "1 stars out of 10\nEOF\nok"


def test_export_is_repeatable(conn, owner, make_config, tmp_path) -> None:
    first = tmp_path / "first.tar.gz"
    second = tmp_path / "second.tar.gz"

    export_owner(conn, owner, make_config(), FileDelivery(first))
    export_owner(conn, owner, make_config(), FileDelivery(second))

    books = [_bundle_workbook(first), _bundle_workbook(second)]
    try:
        assert _sheet_values(books[0]) == _sheet_values(books[1])
    finally:
        for book in books:
            book.close()


def test_colliding_shop_names_keep_separate_sheets(
    conn, store, make_config, tmp_path
) -> None:
    store.owner(1)
    store.product(1, "Ceramic Mug", "7.25")
    for shop_id, name in ((1, "A"), (2, "A-3"), (3, "A")):
        store.shop(shop_id, name, 1)
        store.many_commissions(shop_id, 1, shop_id, datetime(2024, 3, 1))
    out = tmp_path / "collide.tar.gz"

    result = export_owner(conn, 1, make_config(), FileDelivery(out))

    assert len({sheet.path for sheet in result.sheets}) == 3
    assert [sheet.rows for sheet in result.sheets] == [1, 2, 3]
    workbook = _bundle_workbook(out)
    try:
        values = _sheet_values(workbook)
    finally:
        workbook.close()
    assert list(values) == ["A", "A 3", "A 3 2"]
    assert [len(rows) - 1 for rows in values.values()] == [1, 2, 3]


def test_owner_without_shops_creates_nothing(conn, owner, make_config, tmp_path, work_dir) -> None:
    with pytest.raises(EmptyResultError):
        export_owner(conn, 2, make_config(), FileDelivery(tmp_path / "out.tar.gz"))

    assert not work_dir.exists()
    assert not (tmp_path / "out.tar.gz").exists()


def test_external_combiner_gets_sheets_in_enumeration_order(
    conn, owner, make_config, tmp_path, work_dir
) -> None:
    runner = FakeRunner(create=True)
    config = make_config(**{"tools.combiner": "csv2xlsx"})

    export_owner(
        conn, owner, config, FileDelivery(tmp_path / "out.tar.gz"), runner=runner, run_id="r"
    )

    argv = runner.calls[0]
    labels = [argv[i + 1] for i, arg in enumerate(argv) if arg == "-s"]
    files = [Path(arg).name for arg in argv[argv.index("--output") + 2 :]]
    assert labels == EXPECTED_LABELS
    assert files == [
        "Corner_Market-data.csv",
        "Joe_s__Best__Shop_2024-data.csv",
        "Harbor-data.csv",
    ]
    _assert_no_run_state(work_dir)


def test_query_failure_cleans_up(conn, owner, make_config, tmp_path, work_dir) -> None:
    conn.execute("DROP TABLE review")

    with pytest.raises(QueryError):
        export_owner(conn, owner, make_config(), FileDelivery(tmp_path / "out.tar.gz"))

    _assert_no_run_state(work_dir)


def test_sheet_write_failure_cleans_up(
    conn, owner, make_config, tmp_path, work_dir, monkeypatch
) -> None:
    def _fail(path, rows):
        raise SheetWriteError(f"Failed to open file for writing: {path}")

    monkeypatch.setattr(pipeline, "write_sheet", _fail)

    with pytest.raises(SheetWriteError):
        export_owner(conn, owner, make_config(), FileDelivery(tmp_path / "out.tar.gz"))

    _assert_no_run_state(work_dir)


def test_conversion_failure_cleans_up(conn, owner, make_config, tmp_path, work_dir) -> None:
    runner = FakeRunner(returncode=1, output="unreadable csv")
    config = make_config(**{"tools.combiner": "csv2xlsx"})

    with pytest.raises(ConversionError) as exc:
        export_owner(conn, owner, config, FileDelivery(tmp_path / "o.tar.gz"), runner=runner)

    assert "unreadable csv" in exc.value.output
    _assert_no_run_state(work_dir)


def test_compression_failure_cleans_up(conn, owner, make_config, tmp_path, work_dir) -> None:
    runner = FakeRunner(returncode=2, output="tar: cannot write")
    config = make_config(**{"tools.archiver": "tar"})

    with pytest.raises(CompressionError):
        export_owner(conn, owner, config, FileDelivery(tmp_path / "o.tar.gz"), runner=runner)

    _assert_no_run_state(work_dir)
    assert not (tmp_path / "o.tar.gz").exists()


def test_missing_bundle_is_never_delivered(conn, owner, make_config, tmp_path, work_dir) -> None:
    runner = FakeRunner(returncode=0)
    config = make_config(**{"tools.archiver": "tar"})

    with pytest.raises(CompressionError, match="bundle not found"):
        export_owner(conn, owner, config, FileDelivery(tmp_path / "o.tar.gz"), runner=runner)

    assert not (tmp_path / "o.tar.gz").exists()
    _assert_no_run_state(work_dir)


def test_delivery_failure_cleans_up(conn, owner, make_config, work_dir) -> None:
    with pytest.raises(SheetWriteError):
        export_owner(conn, owner, make_config(), FailingDelivery())

    _assert_no_run_state(work_dir)


class _CancelAfter(CancelToken):
    def __init__(self, checks: int) -> None:
        super().__init__()
        self.remaining = checks

    def raise_if_cancelled(self) -> None:
        self.remaining -= 1
        if self.remaining < 0:
            self.cancel()
        super().raise_if_cancelled()


@pytest.mark.parametrize("checks", [0, 1, 3, 6])
def test_cancellation_cleans_up(
    conn, owner, make_config, tmp_path, work_dir, checks
) -> None:
    with pytest.raises(ExportCancelled):
        export_owner(
            conn,
            owner,
            make_config(),
            FileDelivery(tmp_path / "out.tar.gz"),
            cancel=_CancelAfter(checks),
        )

    _assert_no_run_state(work_dir)
    remaining_views = conn.execute(
        "SELECT COUNT(*) FROM duckdb_views() WHERE view_name LIKE 'temp_shop_commissions%'"
    ).fetchone()[0]
    assert remaining_views == 0


def test_cleanup_failure_does_not_mask_pipeline_error(
    conn, owner, make_config, tmp_path, work_dir, monkeypatch
) -> None:
    def _stuck(paths):
        raise CleanupError("Unable to clean-up tmp folder")

    monkeypatch.setattr(pipeline, "cleanup_run", _stuck)
    runner = FakeRunner(returncode=1, output="boom")
    config = make_config(**{"tools.combiner": "csv2xlsx"})

    with pytest.raises(ConversionError):
        export_owner(conn, owner, config, FileDelivery(tmp_path / "o.tar.gz"), runner=runner)

    shutil.rmtree(work_dir)


def test_cleanup_failure_after_success_is_raised(
    conn, owner, make_config, tmp_path, work_dir, monkeypatch
) -> None:
    def _stuck(paths):
        raise CleanupError("Unable to clean-up tmp folder")

    monkeypatch.setattr(pipeline, "cleanup_run", _stuck)

    with pytest.raises(CleanupError):
        export_owner(conn, owner, make_config(), FileDelivery(tmp_path / "o.tar.gz"))

    assert (tmp_path / "o.tar.gz").is_file()
    shutil.rmtree(work_dir)
