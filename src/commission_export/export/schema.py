from __future__ import annotations

from typing import Tuple

import duckdb

from commission_export.utils.duck import execute

TABLE_DDL: Tuple[Tuple[str, str], ...] = (
    (
        "shops_owner",
        "CREATE TABLE IF NOT EXISTS shops_owner (id BIGINT PRIMARY KEY)",
    ),
    (
        "shop",
        "CREATE TABLE IF NOT EXISTS shop ("
        "  id BIGINT PRIMARY KEY,"
        "  code VARCHAR NOT NULL,"
        "  name VARCHAR NOT NULL,"
        "  owned_by BIGINT"
        ")",
    ),
    (
        "shop_details",
        "CREATE TABLE IF NOT EXISTS shop_details ("
        "  shop_id BIGINT PRIMARY KEY,"
        "  email VARCHAR,"
        "  address VARCHAR"
        ")",
    ),
    (
        "product",
        "CREATE TABLE IF NOT EXISTS product ("
        "  id BIGINT PRIMARY KEY,"
        "  name VARCHAR NOT NULL,"
        "  price DECIMAL(12, 2) NOT NULL"
        ")",
    ),
    (
        "commission",
        "CREATE TABLE IF NOT EXISTS commission ("
        "  id BIGINT PRIMARY KEY,"
        "  shop_id BIGINT NOT NULL,"
        "  product_id BIGINT,"
        "  quantity INTEGER NOT NULL,"
        "  created_at TIMESTAMP NOT NULL"
        ")",
    ),
    (
        "commissions_customers",
        "CREATE TABLE IF NOT EXISTS commissions_customers ("
        "  id BIGINT PRIMARY KEY,"
        "  commission_id BIGINT NOT NULL,"
        "  customer_id BIGINT NOT NULL"
        ")",
    ),
    (
        "review",
        "CREATE TABLE IF NOT EXISTS review ("
        "  id BIGINT PRIMARY KEY,"
        "  commissions_customers_id BIGINT NOT NULL,"
        "  type VARCHAR NOT NULL,"
        "  content VARCHAR"
        ")",
    ),
)

TABLE_NAMES: Tuple[str, ...] = tuple(name for name, _ in TABLE_DDL)


def create_schema(conn: duckdb.DuckDBPyConnection) -> None:
    for name, ddl in TABLE_DDL:
        execute(conn, ddl, what=f"create table {name}")


__all__ = ["TABLE_NAMES", "create_schema"]
