from __future__ import annotations

import csv
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import xlsxwriter
from xlsxwriter.exceptions import XlsxWriterException

from commission_export.errors import ConversionError
from commission_export.export.sheets import sheet_label
from commission_export.utils.logging import get_logger
from commission_export.utils.proc import ToolRunner, run_tool

EXCEL_SHEET_NAME_MAX = 31
ENGINES = ("xlsxwriter", "csv2xlsx")

SheetSource = Tuple[str, Path]


def csv2xlsx_command(
    command: str, output: Path, sheets: Sequence[SheetSource]
) -> List[str]:
    """Build the combiner argv; labels and files are paired by position."""
    argv = [command]
    for label, _ in sheets:
        argv.extend(["-s", sheet_label(label)])
    argv.extend(["--output", str(output)])
    argv.extend(str(path) for _, path in sheets)
    return argv


def build_spreadsheet(
    output: Path,
    sheets: Sequence[SheetSource],
    *,
    engine: str = "xlsxwriter",
    command: str = "csv2xlsx",
    runner: ToolRunner = run_tool,
    timeout_s: Optional[float] = None,
) -> Path:
    if not sheets:
        raise ValueError("At least one sheet is required to build a spreadsheet.")
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    logger = get_logger()

    if engine == "csv2xlsx":
        argv = csv2xlsx_command(command, output, sheets)
        result = runner(argv, timeout_s)
        if not result.ok:
            raise ConversionError(
                f"Error converting CSV to XLSX (exit {result.returncode}). "
                f"Command: {' '.join(argv)}",
                output=result.output,
            )
    elif engine == "xlsxwriter":
        try:
            _write_workbook(output, sheets)
        except (XlsxWriterException, OSError, csv.Error) as exc:
            raise ConversionError(f"Error converting CSV to XLSX: {exc}") from exc
    else:
        raise ValueError(f"Unsupported spreadsheet engine: {engine}")

    logger.info("Built %s with %d sheet(s) using %s", output.name, len(sheets), engine)
    return output


def worksheet_names(labels: Sequence[str]) -> List[str]:
    """Fit labels to Excel's sheet name rules: 31 chars, unique ignoring case."""
    names: List[str] = []
    seen = set()
    for index, label in enumerate(labels, start=1):
        base = sheet_label(label)[:EXCEL_SHEET_NAME_MAX]
        if not base.strip():
            base = f"Sheet{index}"
        candidate = base
        counter = 2
        while candidate.casefold() in seen:
            suffix = f" ({counter})"
            candidate = base[: EXCEL_SHEET_NAME_MAX - len(suffix)] + suffix
            counter += 1
        seen.add(candidate.casefold())
        names.append(candidate)
    return names


def _write_workbook(output: Path, sheets: Sequence[SheetSource]) -> None:
    names = worksheet_names([label for label, _ in sheets])
    workbook = xlsxwriter.Workbook(str(output), {"constant_memory": True})
    try:
        for name, (_, csv_path) in zip(names, sheets):
            worksheet = workbook.add_worksheet(name)
            with open(csv_path, "r", encoding="utf-8", newline="") as fp:
                for row_idx, row in enumerate(csv.reader(fp)):
                    for col_idx, value in enumerate(row):
                        # write_string keeps "=..." cells from turning into formulas
                        if worksheet.write_string(row_idx, col_idx, value) == -1:
                            raise ConversionError(
                                f"Sheet {name!r} exceeds the worksheet size limits "
                                f"at row {row_idx + 1}"
                            )
    finally:
        workbook.close()


__all__ = [
    "ENGINES",
    "build_spreadsheet",
    "csv2xlsx_command",
    "worksheet_names",
]
