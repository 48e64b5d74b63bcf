from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, cast

import duckdb
import typer

from commission_export import __version__
from commission_export.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from commission_export.errors import EmptyResultError, ExportError
from commission_export.export.delivery import FileDelivery, StreamDelivery
from commission_export.export.pipeline import export_owner
from commission_export.export.schema import TABLE_NAMES, create_schema
from commission_export.export.shops import list_owners, list_shops
from commission_export.generate.sample import seed_sample_data
from commission_export.utils.duck import fetch_rows, open_db
from commission_export.utils.logging import init_logger

app = typer.Typer(
    add_completion=False, help="Export shop owners' commissions as XLSX bundles."
)

NO_SHOPS_MESSAGE = "There are no shops matching the given shop owner."


def _version_callback(ctx: typer.Context, value: Optional[bool]) -> Optional[bool]:
    if not value or ctx.resilient_parsing:
        return value
    typer.echo(__version__)
    raise typer.Exit()


def _context(ctx: typer.Context) -> tuple[AppConfig, logging.Logger]:
    ctx_obj = ctx.obj or {}
    config = cast(Optional[AppConfig], ctx_obj.get("config"))
    if config is None:
        config = load_config(
            default_path=DEFAULT_CONFIG_PATH,
            override_yaml_path_or_none=None,
            env=os.environ,
            cli_overrides={},
        )
    logger = ctx_obj.get("logger") or init_logger(
        "commission_export", config.logging.level
    )
    return config, logger


def _db_path(config: AppConfig) -> Optional[Path]:
    return Path(config.database.path) if config.database.path else None


def _connect(config: AppConfig, logger: logging.Logger) -> duckdb.DuckDBPyConnection:
    try:
        return open_db(_db_path(config))
    except ExportError as exc:
        typer.echo(str(exc), err=True)
        logger.error("Database connection failed: %s", exc)
        raise typer.Exit(code=1) from exc


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        callback=_version_callback,
        expose_value=False,
        is_flag=True,
        flag_value=True,
        is_eager=True,
        help="Show the application version and exit.",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Path to an alternate YAML configuration file.",
        is_flag=False,
    ),
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Override the DuckDB database path.",
        is_flag=False,
    ),
    work_dir: Optional[Path] = typer.Option(
        None,
        "--work-dir",
        help="Override the base directory for export run trees.",
        is_flag=False,
    ),
    page_size: Optional[int] = typer.Option(
        None,
        "--page-size",
        min=1,
        help="Override how many commission rows are fetched per page.",
        is_flag=False,
    ),
) -> None:
    cli_overrides: dict[str, object] = {}
    if db is not None:
        cli_overrides["database.path"] = str(db)
    if work_dir is not None:
        cli_overrides["export.work_dir"] = str(work_dir)
    if page_size is not None:
        cli_overrides["export.page_size"] = page_size

    config = load_config(
        default_path=DEFAULT_CONFIG_PATH,
        override_yaml_path_or_none=config_path,
        env=os.environ,
        cli_overrides=cli_overrides,
    )
    context_obj = ctx.ensure_object(dict)
    context_obj["config"] = config
    context_obj["logger"] = init_logger("commission_export", config.logging.level)

    if ctx.invoked_subcommand is None:
        typer.echo(
            "Usage: commission-export [OPTIONS] COMMAND [ARGS]...\n\n"
            "Use 'commission-export --help' for more information."
        )
        raise typer.Exit()


@app.command("init")
def init_cmd(ctx: typer.Context) -> None:
    """Create the work directory, a local config file and the database schema."""
    config, logger = _context(ctx)
    created_items: list[tuple[str, Path]] = []

    work_dir = Path(config.export.work_dir)
    if not work_dir.exists():
        work_dir.mkdir(parents=True, exist_ok=True)
        created_items.append(("directory", work_dir))

    target_config_path = Path("configs") / "default.yaml"
    if not target_config_path.exists():
        target_config_path.parent.mkdir(parents=True, exist_ok=True)
        target_config_path.write_text(
            DEFAULT_CONFIG_PATH.read_text(encoding="utf-8"),
            encoding="utf-8",
        )
        created_items.append(("file", target_config_path))

    db_path = _db_path(config)
    if db_path is not None:
        conn = _connect(config, logger)
        try:
            existing = {
                str(row[0])
                for row in fetch_rows(
                    conn, "SELECT table_name FROM information_schema.tables"
                )
            }
            if not set(TABLE_NAMES) <= existing:
                create_schema(conn)
                created_items.append(("schema", db_path))
        except ExportError as exc:
            typer.echo(f"Unable to initialize database schema: {exc}", err=True)
            raise typer.Exit(code=1) from exc
        finally:
            conn.close()

    if not created_items:
        typer.echo("Repository assets already initialized.")
        logger.info("Repository assets already initialized.")
        return

    for item_type, path in created_items:
        if item_type == "directory":
            typer.echo(f"Created directory: {path}")
        elif item_type == "file":
            typer.echo(f"Created file: {path}")
        else:
            typer.echo(f"Created schema in: {path}")
        logger.info("Created %s %s", item_type, path)


@app.command("owners")
def owners_cmd(ctx: typer.Context) -> None:
    """List shop owner ids."""
    config, logger = _context(ctx)
    conn = _connect(config, logger)
    try:
        owner_ids = list_owners(conn)
    except ExportError as exc:
        typer.echo(f"Unable to list shop owners: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        conn.close()

    if not owner_ids:
        typer.echo("No shop owners found.")
        return
    for owner_id in owner_ids:
        typer.echo(str(owner_id))


@app.command("shops")
def shops_cmd(
    ctx: typer.Context,
    owner: int = typer.Option(..., "--owner", min=1, help="Shop owner id."),
) -> None:
    """List an owner's shops as id<TAB>name."""
    config, logger = _context(ctx)
    conn = _connect(config, logger)
    try:
        shops = list_shops(conn, owner)
    except ExportError as exc:
        typer.echo(f"Unable to list shops: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        conn.close()

    if not shops:
        typer.echo(NO_SHOPS_MESSAGE)
        raise typer.Exit(code=1)
    for shop in shops:
        typer.echo(f"{shop.id}\t{shop.name}")


@app.command("gen-sample")
def gen_sample_cmd(
    ctx: typer.Context,
    owners: int = typer.Option(2, "--owners", min=0),
    shops: int = typer.Option(3, "--shops", min=0, help="Shops per owner."),
    commissions: int = typer.Option(
        50, "--commissions", min=0, help="Commissions per shop."
    ),
    seed: int = typer.Option(7, "--seed"),
) -> None:
    """Fill the configured database with deterministic sample commissions."""
    config, logger = _context(ctx)
    if _db_path(config) is None:
        typer.echo("A database path is required; pass --db.", err=True)
        raise typer.Exit(code=1)

    conn = _connect(config, logger)
    try:
        counts = seed_sample_data(
            conn,
            owners=owners,
            shops_per_owner=shops,
            commissions_per_shop=commissions,
            seed=seed,
        )
    except ExportError as exc:
        typer.echo(f"Unable to generate sample data: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        conn.close()

    summary = ", ".join(f"{table}={count}" for table, count in counts.items())
    typer.echo(f"Generated sample data: {summary}")
    logger.info("Generated sample data: %s", summary)


@app.command("export")
def export_cmd(
    ctx: typer.Context,
    owner: int = typer.Option(..., "--owner", min=1, help="Shop owner id."),
    out: Path = typer.Option(
        ...,
        "--out",
        help="File or directory for the bundle; '-' streams it to stdout.",
        is_flag=False,
    ),
) -> None:
    """Export an owner's commissions as a tar.gz holding one XLSX workbook."""
    config, logger = _context(ctx)
    to_stdout = str(out) == "-"
    if to_stdout:
        delivery = StreamDelivery(
            typer.get_binary_stream("stdout"),
            chunk_size=config.export.chunk_size,
            on_headers=lambda headers: logger.debug("Streaming bundle: %s", headers),
        )
    else:
        delivery = FileDelivery(out, chunk_size=config.export.chunk_size)

    conn = _connect(config, logger)
    try:
        result = export_owner(conn, owner, config, delivery, logger=logger)
    except EmptyResultError as exc:
        typer.echo(NO_SHOPS_MESSAGE, err=to_stdout)
        raise typer.Exit(code=1) from exc
    except ExportError as exc:
        typer.echo(f"Unable to export shops data for owner {owner}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        conn.close()

    destination = "stdout" if to_stdout else str(delivery.delivered_to)
    typer.echo(
        f"Exported {len(result.sheets)} sheet(s) with {result.total_rows} row(s) "
        f"to {destination}",
        err=to_stdout,
    )


__all__ = ["app"]
