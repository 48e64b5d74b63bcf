from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import duckdb

from commission_export.config import AppConfig
from commission_export.errors import CleanupError, CompressionError, EmptyResultError
from commission_export.export.bundle import compress_directory
from commission_export.export.cancel import CancelToken
from commission_export.export.commissions import iter_commission_rows, iter_pages
from commission_export.export.delivery import Attachment, Delivery
from commission_export.export.sheets import SheetArtifact, SheetNamer, write_sheet
from commission_export.export.shops import Shop, list_shops
from commission_export.export.spreadsheet import build_spreadsheet
from commission_export.export.workspace import (
    RunPaths,
    cleanup_run,
    create_run,
    new_run_id,
    remove_tree,
)
from commission_export.utils.logging import get_logger, run_context
from commission_export.utils.proc import ToolRunner, run_tool


@dataclass(frozen=True)
class ExportResult:
    run_id: str
    owner_id: int
    sheets: Tuple[SheetArtifact, ...]
    bundle_name: str
    bundle_bytes: int

    @property
    def total_rows(self) -> int:
        return sum(sheet.rows for sheet in self.sheets)


def export_shop_sheet(
    conn: duckdb.DuckDBPyConnection,
    shop: Shop,
    csv_dir: Path,
    namer: SheetNamer,
    *,
    page_size: int,
    cancel: Optional[CancelToken] = None,
) -> SheetArtifact:
    label, filename = namer.assign(shop.id, shop.name)
    path = Path(csv_dir) / filename
    with closing(iter_pages(conn, shop.id, page_size, cancel)) as pages:
        rows = write_sheet(path, iter_commission_rows(pages))
    return SheetArtifact(
        shop_id=shop.id, shop_name=shop.name, label=label, path=path, rows=rows
    )


def export_owner(
    conn: duckdb.DuckDBPyConnection,
    owner_id: int,
    config: AppConfig,
    delivery: Delivery,
    *,
    cancel: Optional[CancelToken] = None,
    runner: ToolRunner = run_tool,
    logger: Optional[logging.Logger] = None,
    run_id: Optional[str] = None,
) -> ExportResult:
    """Export every shop of ``owner_id`` as one bundled workbook.

    Shops are enumerated before anything touches the filesystem, so an owner
    without shops raises :class:`EmptyResultError` and leaves nothing behind.
    Once the run tree exists it is removed on every exit path; a failure to
    remove it is only raised when nothing else went wrong first.
    """
    logger = logger or get_logger()
    shops = list_shops(conn, owner_id)
    if not shops:
        raise EmptyResultError(
            f"There are no shops matching the given shop owner: {owner_id}"
        )

    paths = RunPaths(
        base=Path(config.export.work_dir),
        run_id=run_id or new_run_id(),
        spreadsheet_name=config.export.spreadsheet_name,
        bundle_name=config.export.bundle_name,
    )
    with run_context(logger, paths.run_id):
        logger.info("Exporting %d shop(s) for owner %s", len(shops), owner_id)
        failure: Optional[BaseException] = None
        try:
            return _run_export(
                conn, owner_id, shops, paths, config, delivery, cancel, runner, logger
            )
        except BaseException as exc:
            failure = exc
            logger.error("Export for owner %s failed: %s", owner_id, exc)
            raise
        finally:
            _cleanup(paths, failure, logger)


def _run_export(
    conn: duckdb.DuckDBPyConnection,
    owner_id: int,
    shops: List[Shop],
    paths: RunPaths,
    config: AppConfig,
    delivery: Delivery,
    cancel: Optional[CancelToken],
    runner: ToolRunner,
    logger: logging.Logger,
) -> ExportResult:
    tools = config.tools
    create_run(paths)

    namer = SheetNamer()
    sheets: List[SheetArtifact] = []
    for shop in shops:
        if cancel is not None:
            cancel.raise_if_cancelled()
        sheet = export_shop_sheet(
            conn,
            shop,
            paths.csv_dir,
            namer,
            page_size=config.export.page_size,
            cancel=cancel,
        )
        logger.info("Wrote %d row(s) for shop %s to %s", sheet.rows, shop.id, sheet.path.name)
        sheets.append(sheet)

    if cancel is not None:
        cancel.raise_if_cancelled()
    build_spreadsheet(
        paths.spreadsheet,
        [(sheet.label, sheet.path) for sheet in sheets],
        engine=tools.combiner,
        command=tools.combiner_command,
        runner=runner,
        timeout_s=tools.timeout_s,
    )
    remove_tree(paths.csv_dir)

    if cancel is not None:
        cancel.raise_if_cancelled()
    compress_directory(
        paths.bundle,
        paths.xlsx_dir,
        engine=tools.archiver,
        command=tools.archiver_command,
        runner=runner,
        timeout_s=tools.timeout_s,
    )
    if not paths.bundle.is_file():
        raise CompressionError(
            f"Unable to export shops data for the ID: {owner_id}, bundle not found"
        )

    attachment = Attachment(path=paths.bundle, filename=paths.bundle_name)
    size = attachment.length
    delivery.deliver(attachment)
    logger.info("Delivered %s (%d bytes)", attachment.filename, size)

    return ExportResult(
        run_id=paths.run_id,
        owner_id=int(owner_id),
        sheets=tuple(sheets),
        bundle_name=paths.bundle_name,
        bundle_bytes=size,
    )


def _cleanup(
    paths: RunPaths, failure: Optional[BaseException], logger: logging.Logger
) -> None:
    try:
        cleanup_run(paths)
    except CleanupError as exc:
        if failure is None:
            raise
        logger.error("Cleanup also failed after %s: %s", type(failure).__name__, exc)


__all__ = ["ExportResult", "export_owner", "export_shop_sheet"]
