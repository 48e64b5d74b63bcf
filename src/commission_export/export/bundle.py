from __future__ import annotations

import tarfile
from pathlib import Path
from typing import List, Optional

from commission_export.errors import CompressionError
from commission_export.utils.logging import get_logger
from commission_export.utils.proc import ToolRunner, run_tool

ENGINES = ("tarfile", "tar")


def tar_command(command: str, output: Path, src_dir: Path) -> List[str]:
    return [command, "-zcvf", str(output), "-C", str(src_dir), "."]


def compress_directory(
    output: Path,
    src_dir: Path,
    *,
    engine: str = "tarfile",
    command: str = "tar",
    runner: ToolRunner = run_tool,
    timeout_s: Optional[float] = None,
) -> Path:
    """Pack everything under ``src_dir`` into a gzip tarball at ``output``.

    Members are stored relative to ``src_dir``, so unpacking yields the
    directory's contents rather than a folder named after it.
    """
    output = Path(output)
    src_dir = Path(src_dir)
    if not src_dir.is_dir():
        raise CompressionError(f"Source directory not found: {src_dir}")
    logger = get_logger()

    if engine == "tar":
        argv = tar_command(command, output, src_dir)
        result = runner(argv, timeout_s)
        if not result.ok:
            raise CompressionError(
                "Unable to compress the given directory.\n"
                f"output: {output}\ninput: {src_dir}",
                output=result.output,
            )
    elif engine == "tarfile":
        try:
            with tarfile.open(output, "w:gz") as archive:
                for child in sorted(src_dir.iterdir()):
                    archive.add(child, arcname=child.name)
        except (OSError, tarfile.TarError) as exc:
            output.unlink(missing_ok=True)
            raise CompressionError(
                f"Unable to compress {src_dir} into {output}: {exc}"
            ) from exc
    else:
        raise ValueError(f"Unsupported archive engine: {engine}")

    logger.info("Compressed %s into %s", src_dir, output.name)
    return output


__all__ = ["ENGINES", "compress_directory", "tar_command"]
