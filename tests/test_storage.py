"""
Tests for storage backends

Every behavioural test runs against both the in-memory and the SQLite
backend; PostgreSQL runs only when explicitly enabled.
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone, timedelta
from decimal import Decimal

import pytest

from bank_admin.storage import (
    InMemoryStorage, SQLiteStorage, PostgreSQLStorage, StorageError,
    DuplicateKeyError, ForeignKeyError, create_storage
)


def customer_row(email="jane@example.com", name="Jane Roe", created=None):
    return {
        "name": name,
        "email": email,
        "mobile_number": "+1-555-0100",
        "address": "1 Long Street, Town",
        "created_date": created or datetime.now(timezone.utc),
        "updated_date": None,
    }


def account_row(account_no, customer_id, balance="100.00", account_type="SAVINGS",
                holder="Jane Roe", created=None):
    return {
        "account_no": account_no,
        "account_holder_name": holder,
        "account_balance": Decimal(balance),
        "account_type": account_type,
        "customer_id": customer_id,
        "created_date": created or datetime.now(timezone.utc),
        "updated_date": None,
    }


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    """Each backend that needs no external service"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestBasicOperations:
    """CRUD behaviour shared by all backends"""

    def test_insert_assigns_sequential_keys(self, storage):
        first = storage.insert("customers", customer_row("a@example.com"))
        second = storage.insert("customers", customer_row("b@example.com"))
        assert first == 1
        assert second == 2

    def test_load_round_trips_values(self, storage):
        created = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        key = storage.insert("customers", customer_row(created=created))
        storage.insert("accounts", account_row("ACC000001", key, "12.34"))

        customer = storage.load("customers", key)
        assert customer["email"] == "jane@example.com"
        assert customer["created_date"] == created
        assert customer["updated_date"] is None

        account = storage.load("accounts", "ACC000001")
        assert account["account_balance"] == Decimal("12.34")
        assert isinstance(account["account_balance"], Decimal)

    def test_load_missing_returns_none(self, storage):
        assert storage.load("customers", 99) is None
        assert storage.load("accounts", "ACC999999") is None

    def test_update_changes_columns_only(self, storage):
        key = storage.insert("customers", customer_row())
        assert storage.update("customers", key, {"name": "Jane Doe", "customer_id": 42})
        row = storage.load("customers", key)
        assert row["name"] == "Jane Doe"
        assert row["customer_id"] == key
        assert storage.load("customers", 42) is None

    def test_update_missing_returns_false(self, storage):
        assert storage.update("customers", 5, {"name": "Nobody"}) is False

    def test_conditional_update(self, storage):
        storage.insert("sequences", {"name": "accounts", "high_water": 5})
        assert storage.update("sequences", "accounts", {"high_water": 3},
                              where=[("high_water", "<", 3)]) is False
        assert storage.load("sequences", "accounts")["high_water"] == 5
        assert storage.update("sequences", "accounts", {"high_water": 7},
                              where=[("high_water", "<", 7)])
        assert storage.load("sequences", "accounts")["high_water"] == 7

    def test_delete(self, storage):
        key = storage.insert("customers", customer_row())
        assert storage.delete("customers", key)
        assert storage.load("customers", key) is None
        assert storage.delete("customers", key) is False

    def test_clear_table(self, storage):
        storage.insert("customers", customer_row("a@example.com"))
        storage.insert("customers", customer_row("b@example.com"))
        storage.clear_table("customers")
        assert storage.count("customers") == 0

    def test_unknown_table_rejected(self, storage):
        with pytest.raises(StorageError):
            storage.load_all("transactions")


class TestConstraints:
    """Uniqueness and referential integrity"""

    def test_unique_email(self, storage):
        storage.insert("customers", customer_row())
        with pytest.raises(DuplicateKeyError):
            storage.insert("customers", customer_row())

    def test_duplicate_account_number(self, storage):
        key = storage.insert("customers", customer_row())
        storage.insert("accounts", account_row("ACC000001", key))
        with pytest.raises(DuplicateKeyError):
            storage.insert("accounts", account_row("ACC000001", key))

    def test_account_requires_existing_customer(self, storage):
        with pytest.raises(ForeignKeyError):
            storage.insert("accounts", account_row("ACC000001", 77))

    def test_customer_with_accounts_cannot_be_deleted(self, storage):
        key = storage.insert("customers", customer_row())
        storage.insert("accounts", account_row("ACC000001", key))
        with pytest.raises(ForeignKeyError):
            storage.delete("customers", key)
        assert storage.load("customers", key) is not None


class TestQueries:
    """select/count/total/exists"""

    def setup_rows(self, storage):
        now = datetime.now(timezone.utc)
        ann = storage.insert("customers", customer_row("ann@example.com", "Ann Lee", now - timedelta(days=3)))
        bob = storage.insert("customers", customer_row("bob@example.com", "Bob Stone", now))
        storage.insert("accounts", account_row("ACC000001", ann, "100.00", "SAVINGS", "Ann Lee"))
        storage.insert("accounts", account_row("ACC000002", ann, "250.50", "CURRENT", "Ann Lee"))
        storage.insert("accounts", account_row("ACC000003", bob, "5.25", "SAVINGS", "Bob 100%_Stone"))
        return ann, bob

    def test_select_with_conditions(self, storage):
        ann, _ = self.setup_rows(storage)
        rows = storage.select("accounts", [("customer_id", "=", ann), ("account_type", "=", "CURRENT")])
        assert [r["account_no"] for r in rows] == ["ACC000002"]

    def test_select_order_and_limit(self, storage):
        self.setup_rows(storage)
        rows = storage.select("accounts", order_by="account_balance", descending=True, limit=2)
        assert [r["account_no"] for r in rows] == ["ACC000002", "ACC000001"]

    def test_contains_is_case_insensitive(self, storage):
        self.setup_rows(storage)
        rows = storage.select("customers", [("name", "contains", "LEE")])
        assert [r["name"] for r in rows] == ["Ann Lee"]

    def test_contains_treats_wildcards_literally(self, storage):
        self.setup_rows(storage)
        assert storage.count("accounts", [("account_holder_name", "contains", "100%_")]) == 1
        assert storage.count("accounts", [("account_holder_name", "contains", "%")]) == 1

    def test_timestamp_comparison(self, storage):
        self.setup_rows(storage)
        cutoff = datetime.now(timezone.utc) - timedelta(days=1)
        rows = storage.select("customers", [("created_date", ">", cutoff)])
        assert [r["name"] for r in rows] == ["Bob Stone"]

    def test_amount_comparison(self, storage):
        self.setup_rows(storage)
        rows = storage.select("accounts", [("account_balance", ">", Decimal("100.00"))])
        assert [r["account_no"] for r in rows] == ["ACC000002"]

    def test_count_and_exists(self, storage):
        ann, _ = self.setup_rows(storage)
        assert storage.count("accounts") == 3
        assert storage.count("accounts", [("customer_id", "=", ann)]) == 2
        assert storage.exists("customers", [("email", "=", "bob@example.com")])
        assert not storage.exists("customers", [("email", "=", "eve@example.com")])

    def test_not_equal(self, storage):
        ann, _ = self.setup_rows(storage)
        assert storage.count("customers", [("customer_id", "!=", ann)]) == 1

    def test_total(self, storage):
        self.setup_rows(storage)
        assert storage.total("accounts", "account_balance") == Decimal("355.75")
        assert storage.total("accounts", "account_balance", [("account_type", "=", "SAVINGS")]) == Decimal("105.25")

    def test_total_of_empty_set_is_zero(self, storage):
        assert storage.total("accounts", "account_balance") == Decimal("0.00")

    def test_find(self, storage):
        self.setup_rows(storage)
        rows = storage.find("customers", {"email": "ann@example.com"})
        assert len(rows) == 1
        assert rows[0]["name"] == "Ann Lee"

    def test_unsupported_operator(self, storage):
        with pytest.raises(StorageError):
            storage.select("customers", [("name", "like", "x")])


class TestAdjust:
    """Atomic conditional increments"""

    def setup_account(self, storage, balance="100.00"):
        key = storage.insert("customers", customer_row())
        storage.insert("accounts", account_row("ACC000001", key, balance))

    def test_increment(self, storage):
        self.setup_account(storage)
        stamp = datetime.now(timezone.utc)
        assert storage.adjust("accounts", "ACC000001", "account_balance", Decimal("50.00"),
                              changes={"updated_date": stamp})
        row = storage.load("accounts", "ACC000001")
        assert row["account_balance"] == Decimal("150.00")
        assert row["updated_date"] == stamp

    def test_floor_rejects_overdraw(self, storage):
        self.setup_account(storage)
        assert storage.adjust("accounts", "ACC000001", "account_balance", Decimal("-150.00"),
                              floor=Decimal("0.00")) is False
        row = storage.load("accounts", "ACC000001")
        assert row["account_balance"] == Decimal("100.00")
        assert row["updated_date"] is None

    def test_floor_allows_exact_balance(self, storage):
        self.setup_account(storage)
        assert storage.adjust("accounts", "ACC000001", "account_balance", Decimal("-100.00"),
                              floor=Decimal("0.00"))
        assert storage.load("accounts", "ACC000001")["account_balance"] == Decimal("0.00")

    def test_missing_row(self, storage):
        assert storage.adjust("accounts", "ACC000404", "account_balance", Decimal("1.00")) is False

    def test_ceiling_rejects_overflow(self, storage):
        self.setup_account(storage)
        assert storage.adjust("accounts", "ACC000001", "account_balance", Decimal("50.00"),
                              ceiling=Decimal("120.00")) is False
        assert storage.adjust("accounts", "ACC000001", "account_balance", Decimal("20.00"),
                              ceiling=Decimal("120.00"))
        assert storage.load("accounts", "ACC000001")["account_balance"] == Decimal("120.00")

    def test_concurrent_adjustments_lose_nothing(self, storage):
        self.setup_account(storage, balance="0.00")
        deposits = 40
        withdrawals = 60

        def deposit(_):
            return storage.adjust("accounts", "ACC000001", "account_balance", Decimal("5.00"))

        def withdraw(_):
            return storage.adjust("accounts", "ACC000001", "account_balance", Decimal("-5.00"),
                                  floor=Decimal("0.00"))

        with ThreadPoolExecutor(max_workers=8) as pool:
            deposit_results = pool.map(deposit, range(deposits))
            withdraw_results = pool.map(withdraw, range(withdrawals))
            applied = sum(1 for ok in withdraw_results if ok)
            assert all(deposit_results)

        # Every applied withdrawal was backed by an earlier deposit
        assert applied <= deposits
        balance = storage.load("accounts", "ACC000001")["account_balance"]
        assert balance == Decimal("5.00") * (deposits - applied)
        assert balance >= Decimal("0.00")

    def test_concurrent_withdrawals_never_overdraw(self, storage):
        self.setup_account(storage, balance="50.00")

        def withdraw(_):
            return storage.adjust("accounts", "ACC000001", "account_balance", Decimal("-10.00"),
                                  floor=Decimal("0.00"))

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(withdraw, range(20)))

        assert results.count(True) == 5
        assert storage.load("accounts", "ACC000001")["account_balance"] == Decimal("0.00")


class FailingCursor:
    """DB-API cursor whose statements always fail"""

    def __init__(self, error):
        self.error = error

    def execute(self, sql, params):
        raise self.error

    def close(self):
        pass


class RecordingConnection:
    """DB-API connection that counts commits and rollbacks"""

    def __init__(self, error):
        self.error = error
        self.commits = 0
        self.rollbacks = 0

    def cursor(self):
        return FailingCursor(self.error)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class DriverError(Exception):
    """Stand-in for a driver's base error class"""


class FailingStorage(SQLiteStorage):
    """SQL backend whose connection fails every statement"""

    def __init__(self, error):
        self._lock = threading.RLock()
        self._in_transaction = False
        self._connection = RecordingConnection(error)

    def _integrity_error_types(self):
        return ()

    def _driver_error_types(self):
        return (DriverError,)

    def close(self):
        pass


class TestFailedStatements:
    """Non-integrity driver errors surface as StorageError and leave the connection usable"""

    def test_rolls_back_outside_transaction(self):
        storage = FailingStorage(DriverError("numeric field overflow"))
        with pytest.raises(StorageError, match="numeric field overflow"):
            storage.count("customers")
        assert storage._connection.rollbacks == 1
        assert storage._connection.commits == 0

    def test_transaction_rolls_back_once(self):
        storage = FailingStorage(DriverError("server closed the connection"))
        with pytest.raises(StorageError):
            with storage.atomic():
                storage.count("customers")
        assert storage._connection.rollbacks == 1
        assert storage._in_transaction is False

    def test_sqlite_overflow_then_next_statement_works(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "overflow.db")
        try:
            key = storage.insert("customers", customer_row())
            storage.insert("accounts", account_row("ACC000001", key, "100.00"))
            with pytest.raises(StorageError):
                storage.adjust("accounts", "ACC000001", "account_balance", Decimal("1e20"))
            with pytest.raises(StorageError):
                storage._run("SELECT * FROM no_such_table", fetch=True)
            assert storage.adjust("accounts", "ACC000001", "account_balance", Decimal("1.00"))
            assert storage.load("accounts", "ACC000001")["account_balance"] == Decimal("101.00")
        finally:
            storage.close()


class TestTransactions:
    """atomic() on SQLite"""

    def test_rollback_on_error(self, tmp_path):
        storage = SQLiteStorage(tmp_path / "tx.db")
        try:
            with pytest.raises(RuntimeError):
                with storage.atomic():
                    storage.insert("customers", customer_row())
                    raise RuntimeError("boom")
            assert storage.count("customers") == 0
        finally:
            storage.close()

    def test_commit(self, tmp_path):
        path = tmp_path / "tx.db"
        storage = SQLiteStorage(path)
        with storage.atomic():
            storage.insert("customers", customer_row("a@example.com"))
            storage.insert("customers", customer_row("b@example.com"))
        storage.close()

        reopened = SQLiteStorage(path)
        try:
            assert reopened.count("customers") == 2
        finally:
            reopened.close()


class TestCreateStorage:
    """Backend selection from a database URL"""

    def test_memory(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_file(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path / 'bank.db'}")
        try:
            assert isinstance(storage, SQLiteStorage)
            assert (tmp_path / "bank.db").exists()
        finally:
            storage.close()

    def test_sqlite_in_memory(self):
        storage = create_storage("sqlite://")
        try:
            assert storage.db_path == ":memory:"
        finally:
            storage.close()

    def test_unsupported(self):
        with pytest.raises(StorageError):
            create_storage("mysql://localhost/db")


@pytest.mark.skipif(
    os.environ.get("SKIP_POSTGRESQL_TESTS", "true") == "true",
    reason="PostgreSQL tests skipped - set SKIP_POSTGRESQL_TESTS=false to enable"
)
class TestPostgreSQLStorage:
    """PostgreSQL backend against a live database"""

    @pytest.fixture
    def pg(self):
        url = os.environ.get("BANK_ADMIN_TEST_POSTGRES_URL", "postgresql://localhost/bank_admin_test")
        storage = PostgreSQLStorage(url)
        storage.clear_table("accounts")
        storage.clear_table("sequences")
        storage.clear_table("customers")
        yield storage
        storage.clear_table("accounts")
        storage.clear_table("sequences")
        storage.clear_table("customers")
        storage.close()

    def test_round_trip_and_adjust(self, pg):
        key = pg.insert("customers", customer_row())
        pg.insert("accounts", account_row("ACC000001", key, "100.00"))
        assert pg.adjust("accounts", "ACC000001", "account_balance", Decimal("-150.00"),
                         floor=Decimal("0.00")) is False
        assert pg.adjust("accounts", "ACC000001", "account_balance", Decimal("50.00"))
        assert pg.load("accounts", "ACC000001")["account_balance"] == Decimal("150.00")

    def test_constraints(self, pg):
        key = pg.insert("customers", customer_row())
        with pytest.raises(DuplicateKeyError):
            pg.insert("customers", customer_row())
        with pytest.raises(ForeignKeyError):
            pg.insert("accounts", account_row("ACC000001", key + 1000))
