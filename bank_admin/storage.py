"""
Storage Backend Module

Provides an abstract relational storage interface over the back office
tables (users, customers, accounts, sequences) with implementations for in-memory
(testing), SQLite (default persistence) and PostgreSQL (production).

Backends accept and return plain dictionaries of Python values: amounts as
two-place Decimals, timestamps as timezone-aware datetimes.
"""

from abc import ABC, abstractmethod
from collections import namedtuple
from contextlib import contextmanager
from dataclasses import dataclass, asdict, fields
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
import sqlite3
import threading

from .logging_config import get_logger
from .money import ZERO, to_amount, to_minor_units, from_minor_units

logger = get_logger("bank_admin.storage")


class StorageError(Exception):
    """Base class for storage failures"""


class DuplicateKeyError(StorageError):
    """Primary key or unique constraint violated"""


class ForeignKeyError(StorageError):
    """Referential integrity violated"""


@dataclass(frozen=True)
class Column:
    """Column definition"""
    name: str
    kind: str  # int, text, amount, timestamp, bool
    nullable: bool = False
    unique: bool = False
    references: Optional[Tuple[str, str]] = None  # (table, column)
    non_negative: bool = False


@dataclass(frozen=True)
class TableSchema:
    """Table definition with a single-column primary key"""
    name: str
    key: str
    columns: Tuple[Column, ...]
    auto_key: bool = False
    indexes: Tuple[str, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Column:
        for col in self.columns:
            if col.name == name:
                return col
        raise StorageError(f"Unknown column {self.name}.{name}")


SCHEMAS: Dict[str, TableSchema] = {
    "users": TableSchema(
        name="users",
        key="user_id",
        auto_key=True,
        columns=(
            Column("user_id", "int"),
            Column("username", "text", unique=True),
            Column("password_hash", "text"),
            Column("role", "text"),
            Column("is_active", "bool"),
            Column("created_date", "timestamp"),
        ),
    ),
    "customers": TableSchema(
        name="customers",
        key="customer_id",
        auto_key=True,
        columns=(
            Column("customer_id", "int"),
            Column("name", "text"),
            Column("email", "text", unique=True),
            Column("mobile_number", "text"),
            Column("address", "text"),
            Column("created_date", "timestamp"),
            Column("updated_date", "timestamp", nullable=True),
        ),
        indexes=("created_date",),
    ),
    "accounts": TableSchema(
        name="accounts",
        key="account_no",
        columns=(
            Column("account_no", "text"),
            Column("account_holder_name", "text"),
            Column("account_balance", "amount", non_negative=True),
            Column("account_type", "text"),
            Column("customer_id", "int", references=("customers", "customer_id")),
            Column("created_date", "timestamp"),
            Column("updated_date", "timestamp", nullable=True),
        ),
        indexes=("customer_id", "account_type", "created_date"),
    ),
    # Highest number ever issued per named sequence, so deleted numbers stay retired
    "sequences": TableSchema(
        name="sequences",
        key="name",
        columns=(
            Column("name", "text"),
            Column("high_water", "int"),
        ),
    ),
}

# (column, op, value); op is one of OPERATORS
Condition = Tuple[str, str, Any]
OPERATORS = ("=", "!=", ">", ">=", "<", "<=", "contains")


class StorageRecord:
    """Mixin for dataclass records that map one-to-one onto table rows"""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Create instance from a stored row, ignoring unknown columns"""
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


def _schema(table: str) -> TableSchema:
    schema = SCHEMAS.get(table)
    if schema is None:
        raise StorageError(f"Unknown table: {table}")
    return schema


def _check_conditions(schema: TableSchema, where: Optional[Sequence[Condition]]) -> List[Condition]:
    conditions = list(where or [])
    for column, op, _ in conditions:
        schema.column(column)
        if op not in OPERATORS:
            raise StorageError(f"Unsupported operator: {op}")
    return conditions


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def insert(self, table: str, data: Dict[str, Any]) -> Any:
        """Insert a row and return its primary key (assigned by the store for auto keys)"""
        pass

    @abstractmethod
    def update(self, table: str, key: Any, data: Dict[str, Any],
               where: Optional[Sequence[Condition]] = None) -> bool:
        """
        Overwrite the given columns of a row; the primary key is never changed.

        With ``where``, the row is only written if it also matches every
        condition, checked in the same step as the write.
        """
        pass

    @abstractmethod
    def load(self, table: str, key: Any) -> Optional[Dict[str, Any]]:
        """Load a row by primary key"""
        pass

    @abstractmethod
    def select(self, table: str, where: Optional[Sequence[Condition]] = None,
               order_by: Optional[str] = None, descending: bool = False,
               limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Select rows matching all conditions"""
        pass

    @abstractmethod
    def count(self, table: str, where: Optional[Sequence[Condition]] = None) -> int:
        """Count rows matching all conditions"""
        pass

    @abstractmethod
    def total(self, table: str, column: str, where: Optional[Sequence[Condition]] = None) -> Decimal:
        """Sum an amount column over matching rows (0.00 when none match)"""
        pass

    @abstractmethod
    def adjust(self, table: str, key: Any, column: str, delta: Decimal,
               floor: Optional[Decimal] = None,
               changes: Optional[Dict[str, Any]] = None,
               ceiling: Optional[Decimal] = None) -> bool:
        """
        Atomically add delta to an amount column.

        The update is applied only if the row exists and the resulting value
        is >= floor and <= ceiling (each when given). Extra column values in
        changes are written in the same statement. Returns True if a row was
        updated.
        """
        pass

    @abstractmethod
    def delete(self, table: str, key: Any) -> bool:
        """Delete a row by primary key"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def load_all(self, table: str, order_by: Optional[str] = None,
                 descending: bool = False, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Load all rows from a table"""
        return self.select(table, None, order_by=order_by, descending=descending, limit=limit)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find rows whose columns equal the given values"""
        return self.select(table, [(k, "=", v) for k, v in filters.items()])

    def exists(self, table: str, where: Sequence[Condition]) -> bool:
        """Check if any row matches all conditions"""
        return self.count(table, where) > 0

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[Any, Dict[str, Any]]] = {name: {} for name in SCHEMAS}
        self._sequences: Dict[str, int] = {name: 0 for name in SCHEMAS}
        self._lock = threading.RLock()

    def _check_unique(self, schema: TableSchema, row: Dict[str, Any], key: Any) -> None:
        for col in schema.columns:
            if not col.unique or row.get(col.name) is None:
                continue
            for other_key, other in self._data[schema.name].items():
                if other_key != key and other.get(col.name) == row[col.name]:
                    raise DuplicateKeyError(
                        f"Duplicate value for {schema.name}.{col.name}: {row[col.name]}"
                    )

    def _check_references(self, schema: TableSchema, row: Dict[str, Any]) -> None:
        for col in schema.columns:
            if col.references and row.get(col.name) is not None:
                ref_table, _ = col.references
                if row[col.name] not in self._data[ref_table]:
                    raise ForeignKeyError(
                        f"{schema.name}.{col.name} references missing {ref_table} row {row[col.name]}"
                    )

    def insert(self, table: str, data: Dict[str, Any]) -> Any:
        """Insert a row into memory"""
        schema = _schema(table)
        with self._lock:
            row = {name: data.get(name) for name in schema.column_names}
            key = row[schema.key]
            if key is None and schema.auto_key:
                self._sequences[table] += 1
                key = self._sequences[table]
                row[schema.key] = key
            elif schema.auto_key:
                self._sequences[table] = max(self._sequences[table], key)

            if key in self._data[table]:
                raise DuplicateKeyError(f"Duplicate key for {table}: {key}")
            self._check_unique(schema, row, key)
            self._check_references(schema, row)

            self._data[table][key] = row
            return key

    def update(self, table: str, key: Any, data: Dict[str, Any],
               where: Optional[Sequence[Condition]] = None) -> bool:
        """Overwrite columns of a row in memory"""
        schema = _schema(table)
        conditions = _check_conditions(schema, where)
        with self._lock:
            current = self._data[table].get(key)
            if current is None or not self._matches(current, conditions):
                return False
            row = dict(current)
            for name, value in data.items():
                if name != schema.key:
                    schema.column(name)
                    row[name] = value
            self._check_unique(schema, row, key)
            self._check_references(schema, row)
            self._data[table][key] = row
            return True

    def load(self, table: str, key: Any) -> Optional[Dict[str, Any]]:
        """Load a row from memory"""
        _schema(table)
        with self._lock:
            row = self._data[table].get(key)
            return dict(row) if row is not None else None

    @staticmethod
    def _matches(row: Dict[str, Any], conditions: List[Condition]) -> bool:
        for column, op, value in conditions:
            current = row.get(column)
            if op == "=":
                ok = current == value
            elif op == "!=":
                ok = current != value
            elif current is None or value is None:
                ok = False
            elif op == "contains":
                ok = str(value).lower() in str(current).lower()
            elif op == ">":
                ok = current > value
            elif op == ">=":
                ok = current >= value
            elif op == "<":
                ok = current < value
            else:
                ok = current <= value
            if not ok:
                return False
        return True

    def select(self, table: str, where: Optional[Sequence[Condition]] = None,
               order_by: Optional[str] = None, descending: bool = False,
               limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Select rows from memory"""
        schema = _schema(table)
        conditions = _check_conditions(schema, where)
        with self._lock:
            rows = [dict(r) for r in self._data[table].values() if self._matches(r, conditions)]

        order_column = order_by or schema.key
        schema.column(order_column)
        rows.sort(
            key=lambda r: (r[order_column] is not None, r[order_column], r[schema.key]),
            reverse=descending
        )
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, table: str, where: Optional[Sequence[Condition]] = None) -> int:
        """Count rows in memory"""
        schema = _schema(table)
        conditions = _check_conditions(schema, where)
        with self._lock:
            return sum(1 for r in self._data[table].values() if self._matches(r, conditions))

    def total(self, table: str, column: str, where: Optional[Sequence[Condition]] = None) -> Decimal:
        """Sum an amount column in memory"""
        schema = _schema(table)
        schema.column(column)
        conditions = _check_conditions(schema, where)
        with self._lock:
            amounts = [r[column] for r in self._data[table].values()
                       if self._matches(r, conditions) and r[column] is not None]
        return to_amount(sum(amounts, ZERO))

    def adjust(self, table: str, key: Any, column: str, delta: Decimal,
               floor: Optional[Decimal] = None,
               changes: Optional[Dict[str, Any]] = None,
               ceiling: Optional[Decimal] = None) -> bool:
        """Conditionally add delta to a column under the storage lock"""
        schema = _schema(table)
        schema.column(column)
        with self._lock:
            row = self._data[table].get(key)
            if row is None:
                return False
            new_value = to_amount(row[column] + delta)
            if floor is not None and new_value < floor:
                return False
            if ceiling is not None and new_value > ceiling:
                return False
            row[column] = new_value
            for name, value in (changes or {}).items():
                schema.column(name)
                row[name] = value
            return True

    def delete(self, table: str, key: Any) -> bool:
        """Delete a row from memory, refusing if other rows reference it"""
        _schema(table)
        with self._lock:
            if key not in self._data[table]:
                return False
            for other in SCHEMAS.values():
                for col in other.columns:
                    if col.references and col.references[0] == table:
                        if any(r.get(col.name) == key for r in self._data[other.name].values()):
                            raise ForeignKeyError(
                                f"{table} row {key} is referenced by {other.name}.{col.name}"
                            )
            del self._data[table][key]
            return True

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        _schema(table)
        with self._lock:
            self._data[table] = {}

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


QueryResult = namedtuple("QueryResult", ["rows", "rowcount", "lastrowid"])


class SQLStorage(StorageInterface):
    """
    Shared implementation for DB-API backends.

    Subclasses provide the connection, placeholder style, column type mapping
    and value encoding.
    """

    placeholder = "?"
    use_returning = False
    key_type = "INTEGER PRIMARY KEY"
    column_types: Dict[str, str] = {}

    def __init__(self):
        self._lock = threading.RLock()
        self._in_transaction = False
        self._connection = None

    # Backend hooks

    def _integrity_error(self, error: Exception) -> StorageError:
        return StorageError(str(error))

    def _integrity_error_types(self) -> Tuple[type, ...]:
        return ()

    def _driver_error_types(self) -> Tuple[type, ...]:
        """Every error the driver raises for a failed statement"""
        return self._integrity_error_types()

    def _encode(self, column: Column, value: Any) -> Any:
        return value

    def _decode(self, column: Column, value: Any) -> Any:
        return value

    # Statement execution

    def _rollback_failed_statement(self) -> None:
        # Leaves the shared connection usable after a failed autocommit-style statement
        try:
            self._connection.rollback()
        except self._driver_error_types() as e:
            logger.warning(f"Rollback after failed statement also failed: {e}")

    def _run(self, sql: str, params: Sequence[Any] = (), fetch: bool = False) -> QueryResult:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute(sql, tuple(params))

                rows: List[Dict[str, Any]] = []
                if fetch:
                    names = [d[0] for d in cursor.description]
                    rows = [dict(zip(names, row)) for row in cursor.fetchall()]
                result = QueryResult(rows, cursor.rowcount, getattr(cursor, "lastrowid", None))

                # Only commit if not in transaction
                if not self._in_transaction:
                    self._connection.commit()
                return result
            except self._driver_error_types() as e:
                # Inside atomic() the caller's rollback covers the whole transaction
                if not self._in_transaction:
                    self._rollback_failed_statement()
                if isinstance(e, self._integrity_error_types()):
                    raise self._integrity_error(e) from e
                raise StorageError(str(e)) from e
            finally:
                cursor.close()

    def _create_tables(self) -> None:
        for schema in SCHEMAS.values():
            definitions = []
            for col in schema.columns:
                if col.name == schema.key:
                    if schema.auto_key:
                        definitions.append(f"{col.name} {self.key_type}")
                    else:
                        definitions.append(f"{col.name} {self.column_types[col.kind]} PRIMARY KEY")
                    continue
                definition = f"{col.name} {self.column_types[col.kind]}"
                if not col.nullable:
                    definition += " NOT NULL"
                if col.unique:
                    definition += " UNIQUE"
                if col.non_negative:
                    definition += f" CHECK ({col.name} >= 0)"
                if col.references:
                    ref_table, ref_column = col.references
                    definition += f" REFERENCES {ref_table}({ref_column}) ON DELETE RESTRICT"
                definitions.append(definition)

            self._run(f"CREATE TABLE IF NOT EXISTS {schema.name} ({', '.join(definitions)})")
            for column in schema.indexes:
                self._run(
                    f"CREATE INDEX IF NOT EXISTS idx_{schema.name}_{column} "
                    f"ON {schema.name}({column})"
                )

    def _decode_row(self, schema: TableSchema, row: Dict[str, Any]) -> Dict[str, Any]:
        return {col.name: self._decode(col, row.get(col.name)) for col in schema.columns}

    def _where(self, schema: TableSchema, where: Optional[Sequence[Condition]]) -> Tuple[str, List[Any]]:
        conditions = _check_conditions(schema, where)
        if not conditions:
            return "", []

        p = self.placeholder
        clauses = []
        params: List[Any] = []
        for column, op, value in conditions:
            col = schema.column(column)
            if op == "contains":
                escaped = str(value).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
                clauses.append(f"LOWER({column}) LIKE LOWER({p}) ESCAPE '\\'")
                params.append(f"%{escaped}%")
            elif value is None and op in ("=", "!="):
                clauses.append(f"{column} IS {'NOT ' if op == '!=' else ''}NULL")
            else:
                clauses.append(f"{column} {'<>' if op == '!=' else op} {p}")
                params.append(self._encode(col, value))
        return " WHERE " + " AND ".join(clauses), params

    # StorageInterface

    def insert(self, table: str, data: Dict[str, Any]) -> Any:
        """Insert a row"""
        schema = _schema(table)
        p = self.placeholder
        columns = [c for c in schema.columns
                   if not (c.name == schema.key and schema.auto_key and data.get(c.name) is None)]
        names = ", ".join(c.name for c in columns)
        values = ", ".join(p for _ in columns)
        params = [self._encode(c, data.get(c.name)) for c in columns]
        sql = f"INSERT INTO {table} ({names}) VALUES ({values})"

        with self._lock:
            if not schema.auto_key or data.get(schema.key) is not None:
                self._run(sql, params)
                return data[schema.key]
            if self.use_returning:
                result = self._run(f"{sql} RETURNING {schema.key}", params, fetch=True)
                return result.rows[0][schema.key]
            return self._run(sql, params).lastrowid

    def update(self, table: str, key: Any, data: Dict[str, Any],
               where: Optional[Sequence[Condition]] = None) -> bool:
        """Overwrite columns of a row"""
        schema = _schema(table)
        p = self.placeholder
        conditions = [(schema.key, "=", key)] + list(where or [])
        columns = [schema.column(name) for name in data if name != schema.key]
        if not columns:
            return self.exists(table, conditions)
        assignments = ", ".join(f"{c.name} = {p}" for c in columns)
        params = [self._encode(c, data[c.name]) for c in columns]
        clause, where_params = self._where(schema, conditions)
        result = self._run(f"UPDATE {table} SET {assignments}{clause}", params + where_params)
        return result.rowcount > 0

    def load(self, table: str, key: Any) -> Optional[Dict[str, Any]]:
        """Load a row by primary key"""
        schema = _schema(table)
        rows = self.select(table, [(schema.key, "=", key)], limit=1)
        return rows[0] if rows else None

    def select(self, table: str, where: Optional[Sequence[Condition]] = None,
               order_by: Optional[str] = None, descending: bool = False,
               limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Select rows matching all conditions"""
        schema = _schema(table)
        clause, params = self._where(schema, where)
        order_column = order_by or schema.key
        schema.column(order_column)
        direction = "DESC" if descending else "ASC"
        sql = (
            f"SELECT {', '.join(schema.column_names)} FROM {table}{clause} "
            f"ORDER BY {order_column} {direction}, {schema.key} {direction}"
        )
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        result = self._run(sql, params, fetch=True)
        return [self._decode_row(schema, row) for row in result.rows]

    def count(self, table: str, where: Optional[Sequence[Condition]] = None) -> int:
        """Count rows matching all conditions"""
        schema = _schema(table)
        clause, params = self._where(schema, where)
        result = self._run(f"SELECT COUNT(*) AS count FROM {table}{clause}", params, fetch=True)
        return int(result.rows[0]["count"])

    def total(self, table: str, column: str, where: Optional[Sequence[Condition]] = None) -> Decimal:
        """Sum an amount column"""
        schema = _schema(table)
        col = schema.column(column)
        clause, params = self._where(schema, where)
        result = self._run(
            f"SELECT COALESCE(SUM({column}), 0) AS total FROM {table}{clause}", params, fetch=True
        )
        return self._decode(col, result.rows[0]["total"])

    def adjust(self, table: str, key: Any, column: str, delta: Decimal,
               floor: Optional[Decimal] = None,
               changes: Optional[Dict[str, Any]] = None,
               ceiling: Optional[Decimal] = None) -> bool:
        """Conditionally add delta to a column in a single UPDATE statement"""
        schema = _schema(table)
        p = self.placeholder
        col = schema.column(column)

        assignments = [f"{column} = {column} + {p}"]
        params: List[Any] = [self._encode(col, delta)]
        for name, value in (changes or {}).items():
            assignments.append(f"{name} = {p}")
            params.append(self._encode(schema.column(name), value))

        sql = f"UPDATE {table} SET {', '.join(assignments)} WHERE {schema.key} = {p}"
        params.append(self._encode(schema.column(schema.key), key))
        if floor is not None:
            sql += f" AND {column} + {p} >= {p}"
            params.extend([self._encode(col, delta), self._encode(col, floor)])
        if ceiling is not None:
            sql += f" AND {column} + {p} <= {p}"
            params.extend([self._encode(col, delta), self._encode(col, ceiling)])

        return self._run(sql, params).rowcount > 0

    def delete(self, table: str, key: Any) -> bool:
        """Delete a row by primary key"""
        schema = _schema(table)
        p = self.placeholder
        result = self._run(
            f"DELETE FROM {table} WHERE {schema.key} = {p}",
            [self._encode(schema.column(schema.key), key)]
        )
        return result.rowcount > 0

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        _schema(table)
        self._run(f"DELETE FROM {table}")

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        with self._lock:
            if not self._in_transaction:
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False


class SQLiteStorage(SQLStorage):
    """SQLite storage implementation for persistence"""

    placeholder = "?"
    key_type = "INTEGER PRIMARY KEY AUTOINCREMENT"
    column_types = {
        "int": "INTEGER",
        "text": "TEXT",
        "amount": "INTEGER",  # minor units
        "timestamp": "TEXT",  # ISO 8601
        "bool": "INTEGER",
    }

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        # Set isolation_level to 'DEFERRED' to enable manual transaction control
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')

        with self._lock:
            self._connection.execute("PRAGMA foreign_keys = ON")
            # Enable WAL mode for better concurrent access
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.commit()

        self._create_tables()

    def _integrity_error_types(self) -> Tuple[type, ...]:
        return (sqlite3.IntegrityError,)

    def _driver_error_types(self) -> Tuple[type, ...]:
        # OverflowError: integer parameter outside SQLite's 64-bit range
        return (sqlite3.Error, OverflowError)

    def _integrity_error(self, error: Exception) -> StorageError:
        message = str(error)
        if "FOREIGN KEY" in message:
            return ForeignKeyError(message)
        if "UNIQUE" in message or "PRIMARY KEY" in message:
            return DuplicateKeyError(message)
        return StorageError(message)

    def _encode(self, column: Column, value: Any) -> Any:
        if value is None:
            return None
        if column.kind == "amount":
            return to_minor_units(value)
        if column.kind == "timestamp":
            return value.isoformat(timespec="microseconds")
        if column.kind == "bool":
            return 1 if value else 0
        return value

    def _decode(self, column: Column, value: Any) -> Any:
        if value is None:
            return None
        if column.kind == "amount":
            return from_minor_units(value)
        if column.kind == "timestamp":
            return datetime.fromisoformat(value)
        if column.kind == "bool":
            return bool(value)
        return value

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class PostgreSQLStorage(SQLStorage):
    """PostgreSQL storage backend with ACID transaction support"""

    placeholder = "%s"
    use_returning = True
    key_type = "BIGSERIAL PRIMARY KEY"
    column_types = {
        "int": "BIGINT",
        "text": "VARCHAR(500)",
        "amount": "NUMERIC(15, 2)",
        "timestamp": "TIMESTAMP WITH TIME ZONE",
        "bool": "BOOLEAN",
    }

    def __init__(self, connection_string: str):
        try:
            import psycopg2
            self.psycopg2 = psycopg2
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install psycopg2-binary")

        super().__init__()
        self.connection_string = connection_string
        self._connect()
        self._create_tables()

    def _connect(self) -> None:
        """Establish database connection"""
        with self._lock:
            if self._connection:
                try:
                    self._connection.close()
                except self.psycopg2.Error:
                    pass

            self._connection = self.psycopg2.connect(self.connection_string)
            self._connection.autocommit = False  # We handle transactions manually

    def _integrity_error_types(self) -> Tuple[type, ...]:
        return (self.psycopg2.IntegrityError,)

    def _driver_error_types(self) -> Tuple[type, ...]:
        return (self.psycopg2.Error,)

    def _integrity_error(self, error: Exception) -> StorageError:
        code = getattr(error, "pgcode", None)
        if code == "23503":
            return ForeignKeyError(str(error))
        if code == "23505":
            return DuplicateKeyError(str(error))
        return StorageError(str(error))

    def _decode(self, column: Column, value: Any) -> Any:
        if value is not None and column.kind == "amount":
            return to_amount(value)
        return value

    def close(self) -> None:
        """Close PostgreSQL connection"""
        with self._lock:
            if self._connection:
                try:
                    self._connection.close()
                except self.psycopg2.Error:
                    pass
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Create a storage backend from a database URL.

    Supported forms: ``memory://``, ``sqlite://`` (in-memory SQLite),
    ``sqlite:///path/to/file.db`` and ``postgresql://...``.
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:]
        return SQLiteStorage(path or ":memory:")
    if database_url.startswith(("postgresql://", "postgres://")):
        return PostgreSQLStorage(database_url)
    raise StorageError(f"Unsupported database URL: {database_url}")
