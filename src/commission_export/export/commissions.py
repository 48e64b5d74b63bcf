"""Paginated extraction and row formatting for one shop's commissions.

Rows come out of a per-shop temporary view, one page at a time, ordered by
the ``DD/MM/YYYY`` commission date *as a string*. That ordering is not
chronological across months and years; downstream consumers rely on it,
so it is kept as is. ``commission_id`` breaks ties so that LIMIT/OFFSET
pages never overlap.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple

import duckdb
import polars as pl

from commission_export.errors import QueryError
from commission_export.export.cancel import CancelToken
from commission_export.utils.duck import execute, make_identifier, safe_query
from commission_export.utils.logging import get_logger

DEFAULT_PAGE_SIZE = 100_000
REVIEW_SEPARATOR = "\nEOF\n"

HEADER: Tuple[str, ...] = (
    "Commission Time",
    "Shop Code Name",
    "Shop Email",
    "Shop Address",
    "Earnings",
    "Quantity",
    "Product Name",
    "Customers Number",
    "Customers IDs",
    "Reviews",
)

COLUMNS: Tuple[str, ...] = (
    "commission_time",
    "shop_code_name",
    "shop_email",
    "shop_address",
    "earnings",
    "quantity",
    "product_name",
    "customers_number",
    "customers_ids",
    "reviews",
)

_CENTS = Decimal("0.01")

_CREATE_VIEW_SQL = """
CREATE OR REPLACE TEMP VIEW {view} AS
SELECT
    com.id AS commission_id,
    strftime(com.created_at, '%d/%m/%Y') AS commission_time,
    TRIM(shop.code || ' - ' || shop.name) AS shop_code_name,
    COALESCE(shop_details.email, '') AS shop_email,
    COALESCE(shop_details.address, '') AS shop_address,
    CAST(ROUND(com.quantity * prod.price, 2) AS VARCHAR) AS earnings,
    com.quantity AS quantity,
    prod.name AS product_name,
    COALESCE(customers.number, 0) AS customers_number,
    COALESCE(customers.ids, '') AS customers_ids,
    COALESCE(
        CAST(
            to_json(
                list(
                    CASE review.type
                        WHEN 'RATING' THEN review.content || ' stars out of 10'
                        WHEN 'DESCRIPTION' THEN review.content
                        ELSE 'INVALID REVIEW TYPE'
                    END
                    ORDER BY cc.customer_id, review.id
                )
            ) AS VARCHAR
        ),
        '[]'
    ) AS reviews
FROM commission com
    LEFT JOIN shop ON com.shop_id = shop.id
    LEFT JOIN shop_details ON shop_details.shop_id = shop.id
    LEFT JOIN (
        SELECT
            commission_id,
            COUNT(*) AS number,
            string_agg(customer_key, ', ' ORDER BY customer_key) AS ids
        FROM (
            SELECT DISTINCT commission_id, CAST(customer_id AS VARCHAR) AS customer_key
            FROM commissions_customers
        ) distinct_customers
        GROUP BY commission_id
    ) customers ON com.id = customers.commission_id
    LEFT JOIN product prod ON com.product_id = prod.id
    LEFT JOIN commissions_customers cc ON com.id = cc.commission_id
    LEFT JOIN review ON review.commissions_customers_id = cc.id
WHERE shop.id = {shop_id}
GROUP BY
    com.id,
    com.created_at,
    shop.code,
    shop.name,
    shop_details.email,
    shop_details.address,
    com.quantity,
    prod.name,
    prod.price,
    customers.number,
    customers.ids
"""

_PAGE_SQL = (
    "SELECT " + ", ".join(COLUMNS) + " FROM {view} "
    "ORDER BY commission_time, commission_id "
    "LIMIT {limit} OFFSET {offset}"
)


def view_name(shop_id: int) -> str:
    return make_identifier(f"temp_shop_commissions_{int(shop_id)}")


@contextmanager
def scoped_view(conn: duckdb.DuckDBPyConnection, shop_id: int) -> Iterator[str]:
    """Create the shop's temporary view and drop it however the block exits."""
    logger = get_logger()
    name = view_name(shop_id)
    execute(
        conn,
        _CREATE_VIEW_SQL.format(view=name, shop_id=int(shop_id)),
        what="creating temporary view",
    )
    try:
        yield name
    except BaseException:
        try:
            _drop_view(conn, name)
        except QueryError as exc:
            # Keep the in-flight failure; a drop error must not replace it.
            logger.warning("Unable to drop view %s after failure: %s", name, exc)
        raise
    else:
        _drop_view(conn, name)


def _drop_view(conn: duckdb.DuckDBPyConnection, name: str) -> None:
    execute(conn, f"DROP VIEW IF EXISTS {name}", what="dropping temporary view")


def iter_pages(
    conn: duckdb.DuckDBPyConnection,
    shop_id: int,
    page_size: int = DEFAULT_PAGE_SIZE,
    cancel: Optional[CancelToken] = None,
) -> Iterator[pl.DataFrame]:
    """Yield the shop's commission rows one page at a time.

    Pages are fetched strictly one after another; the first empty page ends
    the stream and is not yielded. Close the generator (or exhaust it) to
    release the temporary view.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    logger = get_logger()

    with scoped_view(conn, shop_id) as name:
        offset = 0
        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()
            page = safe_query(
                conn, _PAGE_SQL.format(view=name, limit=page_size, offset=offset)
            )
            if page.height == 0:
                break
            logger.debug(
                "Fetched %d rows for shop %s at offset %d", page.height, shop_id, offset
            )
            yield page
            offset += page_size


def join_reviews(raw: Any) -> str:
    if raw is None or raw == "":
        return ""
    items = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
    if items is None:
        return ""
    if not isinstance(items, list):
        items = [items]
    return REVIEW_SEPARATOR.join("" if item is None else str(item) for item in items)


def _format_amount(value: Any) -> str:
    if value is None:
        return ""
    try:
        amount = Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return str(value)
    return format(amount, "f")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def format_commission(row: Mapping[str, Any]) -> List[str]:
    return [
        _text(row.get("commission_time")),
        _text(row.get("shop_code_name")),
        _text(row.get("shop_email")),
        _text(row.get("shop_address")),
        _format_amount(row.get("earnings")),
        _text(row.get("quantity")),
        _text(row.get("product_name")),
        _text(row.get("customers_number")),
        _text(row.get("customers_ids")),
        join_reviews(row.get("reviews")),
    ]


def iter_commission_rows(pages: Iterable[pl.DataFrame]) -> Iterator[List[str]]:
    """Yield the header, then one formatted row per commission across ``pages``."""
    yield list(HEADER)
    for page in pages:
        for row in page.iter_rows(named=True):
            yield format_commission(row)


__all__ = [
    "COLUMNS",
    "DEFAULT_PAGE_SIZE",
    "HEADER",
    "REVIEW_SEPARATOR",
    "format_commission",
    "iter_commission_rows",
    "iter_pages",
    "join_reviews",
    "scoped_view",
    "view_name",
]
