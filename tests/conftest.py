"""Shared fixtures for the migration tests."""

from typing import Dict, List, Optional, Set

import pytest

from store_migrate.errors import ConnectivityError
from store_migrate.extractors.base import PageResult, SourceReader
from store_migrate.loaders.sqlite_loader import SQLiteTarget
from store_migrate.models.entity import EntityTypeSpec, EnumDomain, ForeignKey


class FakeSource(SourceReader):
    """Dict-backed source that records every page request."""

    store_name = "fake"

    def __init__(self, collections: Dict[str, List[dict]], fail_on: Optional[Set[str]] = None):
        super().__init__()
        self.collections = collections
        self.fail_on = set(fail_on or ())
        self.requests: List[tuple] = []

    def _check(self, collection: str) -> None:
        if collection in self.fail_on:
            raise ConnectivityError(f"{collection} unreachable", store=self.store_name, operation="fetch")

    def fetch_page(self, collection, offset, limit, order_by="created_at"):
        self._check(collection)
        self.requests.append((collection, offset, limit))
        records = self.collections.get(collection, [])
        return PageResult(records=records[offset:offset + limit], total_count=len(records))

    def ping(self, collection):
        self._check(collection)
        return len(self.collections.get(collection, []))


ACCOUNTS_DDL = "CREATE TABLE accounts (id TEXT PRIMARY KEY, name TEXT NOT NULL, active INTEGER, created_at TEXT)"
TICKETS_DDL = (
    "CREATE TABLE tickets (id TEXT PRIMARY KEY, accountId TEXT, status TEXT, "
    "meta TEXT, created_at TEXT)"
)


def make_account_specs() -> List[EntityTypeSpec]:
    """Tickets are declared first so ordering has to move them."""
    return [
        EntityTypeSpec(
            name="tickets",
            source_collection="tickets",
            target_table="tickets",
            columns=("id", "accountId", "status", "meta", "created_at"),
            enums={"status": EnumDomain(frozenset({"open", "closed"}), "open")},
            references=(ForeignKey("accountId", "accounts"),),
            required_fields=("id", "status"),
            json_fields=("meta",),
        ),
        EntityTypeSpec(
            name="accounts",
            source_collection="accounts",
            target_table="accounts",
            columns=("id", "name", "active", "created_at"),
            required_fields=("id", "name"),
            boolean_fields=("active",),
        ),
    ]


@pytest.fixture
def account_specs():
    return make_account_specs()


@pytest.fixture
def target():
    """In-memory SQLite target with the account/ticket schema."""
    store = SQLiteTarget(":memory:")
    store.connect()
    store.execute(ACCOUNTS_DDL)
    store.execute(TICKETS_DDL)
    yield store
    store.close()


@pytest.fixture
def accounts():
    return [
        {"id": f"a{i}", "name": f"Account {i}", "active": i % 2 == 0,
         "created_at": f"2024-01-0{i}T10:00:00Z"}
        for i in range(1, 4)
    ]


@pytest.fixture
def tickets():
    """Five tickets, two referencing an account that does not exist."""
    account_ids = ["a1", "a2", "a3", "missing", "missing"]
    return [
        {"id": f"t{i}", "accountId": account, "status": "open",
         "meta": {"tags": ["x"], "n": i}, "created_at": f"2024-02-0{i}T08:30:00+02:00"}
        for i, account in enumerate(account_ids, 1)
    ]


@pytest.fixture
def source(accounts, tickets):
    return FakeSource({"accounts": accounts, "tickets": tickets})
