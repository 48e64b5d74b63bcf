from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Sequence, Tuple

import duckdb
import pytest

from commission_export.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from commission_export.export.schema import create_schema
from commission_export.utils.duck import open_db

Review = Tuple[str, Optional[str]]
Customer = Tuple[int, Sequence[Review]]


class CommissionStore:
    """Tiny writer for the commission tables used across tests."""

    def __init__(self, conn: duckdb.DuckDBPyConnection) -> None:
        self.conn = conn
        self._commission_id = 0
        self._link_id = 0
        self._review_id = 0

    def owner(self, owner_id: int) -> int:
        self.conn.execute("INSERT INTO shops_owner VALUES (?)", [owner_id])
        return owner_id

    def shop(
        self,
        shop_id: int,
        name: str,
        owner_id: int,
        *,
        code: str = "S1",
        email: Optional[str] = None,
        address: Optional[str] = None,
    ) -> int:
        self.conn.execute(
            "INSERT INTO shop VALUES (?, ?, ?, ?)", [shop_id, code, name, owner_id]
        )
        if email is not None or address is not None:
            self.conn.execute(
                "INSERT INTO shop_details VALUES (?, ?, ?)", [shop_id, email, address]
            )
        return shop_id

    def product(self, product_id: int, name: str, price: str) -> int:
        self.conn.execute(
            "INSERT INTO product VALUES (?, ?, ?)", [product_id, name, Decimal(price)]
        )
        return product_id

    def commission(
        self,
        shop_id: int,
        product_id: int,
        created_at: datetime,
        *,
        quantity: int = 1,
        customers: Sequence[Customer] = (),
    ) -> int:
        self._commission_id += 1
        commission_id = self._commission_id
        self.conn.execute(
            "INSERT INTO commission VALUES (?, ?, ?, ?, ?)",
            [commission_id, shop_id, product_id, quantity, created_at],
        )
        for customer_id, reviews in customers:
            self._link_id += 1
            self.conn.execute(
                "INSERT INTO commissions_customers VALUES (?, ?, ?)",
                [self._link_id, commission_id, customer_id],
            )
            for review_type, content in reviews:
                self._review_id += 1
                self.conn.execute(
                    "INSERT INTO review VALUES (?, ?, ?, ?)",
                    [self._review_id, self._link_id, review_type, content],
                )
        return commission_id

    def many_commissions(
        self, shop_id: int, product_id: int, count: int, start: datetime
    ) -> None:
        for _ in range(count):
            self.commission(shop_id, product_id, start)


@pytest.fixture
def conn() -> Iterator[duckdb.DuckDBPyConnection]:
    connection = open_db(None)
    create_schema(connection)
    try:
        yield connection
    finally:
        connection.close()


@pytest.fixture
def store(conn: duckdb.DuckDBPyConnection) -> CommissionStore:
    return CommissionStore(conn)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., AppConfig]:
    def _make(**overrides: Any) -> AppConfig:
        cli_overrides: Dict[str, Any] = {
            "database.path": None,
            "export.work_dir": str(tmp_path / "work"),
            "export.page_size": 5,
        }
        cli_overrides.update({key.replace("__", "."): value for key, value in overrides.items()})
        return load_config(DEFAULT_CONFIG_PATH, None, env={}, cli_overrides=cli_overrides)

    return _make
