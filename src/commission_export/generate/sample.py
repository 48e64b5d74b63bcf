from __future__ import annotations

import random
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

import duckdb

from commission_export.errors import QueryError
from commission_export.export.schema import create_schema
from commission_export.utils.duck import fetch_rows

SHOP_NAMES: Sequence[str] = (
    "Corner Market",
    'Joe\'s "Best" Shop/2024',
    "Comma, Semicolon & Co.",
    "Café Ünïcode",
    "Nightly Deals",
    "Harbor Goods",
)

PRODUCT_CATALOG: Sequence[Tuple[str, Decimal]] = (
    ("Espresso Beans 1kg", Decimal("18.90")),
    ("Ceramic Mug", Decimal("7.25")),
    ("Gift Card", Decimal("25.00")),
    ("Tote Bag", Decimal("12.40")),
    ('Poster 24" x 36"', Decimal("9.99")),
)

REVIEW_TYPES: Sequence[str] = ("RATING", "DESCRIPTION", "DESCRIPTION", "LEGACY")
DESCRIPTIONS: Sequence[str] = (
    "Great service",
    "Arrived late, but well packed",
    'Said "thanks" twice',
    "Would buy again\nfrom this shop",
)

DEFAULT_START = datetime(2023, 1, 1)


def _next_id(conn: duckdb.DuckDBPyConnection, table: str) -> int:
    rows = fetch_rows(conn, f"SELECT COALESCE(MAX(id), 0) FROM {table}")
    return int(rows[0][0]) + 1


def _insert(
    conn: duckdb.DuckDBPyConnection, table: str, rows: List[Tuple[object, ...]]
) -> None:
    if not rows:
        return
    placeholders = ", ".join("?" for _ in rows[0])
    sql = f"INSERT INTO {table} VALUES ({placeholders})"
    try:
        conn.executemany(sql, rows)
    except duckdb.Error as exc:
        raise QueryError(f"Unable to insert sample rows into {table}: {exc}") from exc


def seed_sample_data(
    conn: duckdb.DuckDBPyConnection,
    *,
    owners: int = 2,
    shops_per_owner: int = 3,
    commissions_per_shop: int = 50,
    seed: int = 7,
    start: Optional[datetime] = None,
) -> Dict[str, int]:
    """Fill the commission tables with deterministic synthetic data.

    Shop names cycle through names that need sanitizing, review types include
    one the export does not recognise, and some commissions have no customers.
    Returns the number of rows added per table.
    """
    if owners < 0 or shops_per_owner < 0 or commissions_per_shop < 0:
        raise ValueError("sample sizes must be non-negative")
    create_schema(conn)
    rng = random.Random(seed)
    start = start or DEFAULT_START

    owner_id = _next_id(conn, "shops_owner")
    shop_id = _next_id(conn, "shop")
    product_id = _next_id(conn, "product")
    commission_id = _next_id(conn, "commission")
    link_id = _next_id(conn, "commissions_customers")
    review_id = _next_id(conn, "review")

    products = []
    product_ids = []
    for offset, (name, price) in enumerate(PRODUCT_CATALOG):
        products.append((product_id + offset, name, price))
        product_ids.append(product_id + offset)

    owner_rows, shop_rows, detail_rows = [], [], []
    commission_rows, link_rows, review_rows = [], [], []

    for owner_offset in range(owners):
        current_owner = owner_id + owner_offset
        owner_rows.append((current_owner,))
        for _ in range(shops_per_owner):
            name = SHOP_NAMES[(shop_id - 1) % len(SHOP_NAMES)]
            shop_rows.append((shop_id, f"S{shop_id:04d}", name, current_owner))
            if rng.random() < 0.8:
                detail_rows.append(
                    (
                        shop_id,
                        f"shop{shop_id}@example.com",
                        f"{rng.randint(1, 999)} Market Street, Springfield",
                    )
                )

            for _ in range(commissions_per_shop):
                created_at = start + timedelta(
                    days=rng.randrange(730), seconds=rng.randrange(86_400)
                )
                commission_rows.append(
                    (
                        commission_id,
                        shop_id,
                        rng.choice(product_ids),
                        rng.randint(1, 12),
                        created_at,
                    )
                )
                customers = rng.sample(range(1, 500), k=rng.randint(0, 3))
                for customer in customers:
                    link_rows.append((link_id, commission_id, customer))
                    if rng.random() < 0.7:
                        review_type = rng.choice(REVIEW_TYPES)
                        if review_type == "RATING":
                            content = str(rng.randint(1, 10))
                        else:
                            content = rng.choice(DESCRIPTIONS)
                        review_rows.append((review_id, link_id, review_type, content))
                        review_id += 1
                    link_id += 1
                commission_id += 1
            shop_id += 1

    _insert(conn, "shops_owner", owner_rows)
    _insert(conn, "shop", shop_rows)
    _insert(conn, "shop_details", detail_rows)
    _insert(conn, "product", products)
    _insert(conn, "commission", commission_rows)
    _insert(conn, "commissions_customers", link_rows)
    _insert(conn, "review", review_rows)

    return {
        "shops_owner": len(owner_rows),
        "shop": len(shop_rows),
        "shop_details": len(detail_rows),
        "product": len(products),
        "commission": len(commission_rows),
        "commissions_customers": len(link_rows),
        "review": len(review_rows),
    }


__all__ = ["seed_sample_data"]
