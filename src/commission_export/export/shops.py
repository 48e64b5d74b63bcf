from __future__ import annotations

from dataclasses import dataclass
from typing import List

import duckdb

from commission_export.utils.duck import fetch_rows

_OWNERS_SQL = "SELECT id FROM shops_owner ORDER BY id"

_SHOPS_SQL = (
    "SELECT shop.id AS id, shop.name AS name "
    "FROM shop "
    "LEFT JOIN shops_owner own ON shop.owned_by = own.id "
    "WHERE own.id = ? "
    "ORDER BY shop.id"
)


@dataclass(frozen=True)
class Shop:
    id: int
    name: str


def list_owners(conn: duckdb.DuckDBPyConnection) -> List[int]:
    return [int(row[0]) for row in fetch_rows(conn, _OWNERS_SQL)]


def list_shops(conn: duckdb.DuckDBPyConnection, owner_id: int) -> List[Shop]:
    """Return the owner's shops ordered by shop id."""
    if int(owner_id) <= 0:
        raise ValueError(f"owner_id must be a positive integer, got {owner_id!r}")
    rows = fetch_rows(conn, _SHOPS_SQL, [int(owner_id)])
    return [Shop(id=int(shop_id), name=name or "") for shop_id, name in rows]


__all__ = ["Shop", "list_owners", "list_shops"]
