"""Resource storage in PostgreSQL through a DB-API 2.0 connection.

The connection must accept numbered ``$1``-style markers, which is what
the statements built by :mod:`restgrove.db.sql` use.
"""

from __future__ import annotations

from contextlib import closing, suppress
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence, TypeVar

from restgrove.db.meta import ID_FIELD, ResourceMeta, resource_db_type
from restgrove.db.sql import (
    count_sql_and_args,
    create_table_sql,
    delete_sql_and_args,
    exists_sql_and_args,
    insert_sql_and_args,
    join_select_sql_and_args,
    rows_to_resources,
    select_sql_and_args,
    table_name,
    update_sql_and_args,
)
from restgrove.resource import ResourceBase

DROP_SCHEMA_SQL = "drop schema if exists {} cascade"
CREATE_SCHEMA_SQL = "create schema if not exists gr"
RECOVERY_SQL = "select pg_is_in_recovery()"

T = TypeVar("T")


def _fetch(connection: Any, sql: str, args: Sequence[Any] = ()) -> tuple[Any, list]:
    with closing(connection.cursor()) as cursor:
        cursor.execute(sql, list(args))
        rows = list(cursor.fetchall())
        return cursor.description, rows


def _execute(connection: Any, sql: str, args: Sequence[Any] = ()) -> int:
    with closing(connection.cursor()) as cursor:
        cursor.execute(sql, list(args))
        return cursor.rowcount


def db_is_recovery_mode(connection: Any) -> bool:
    """Tell whether the server is a standby in recovery."""
    _, rows = _fetch(connection, RECOVERY_SQL)
    return len(rows) == 1 and bool(rows[0][0])


def init_schema(connection: Any, *args: str) -> None:
    """Drop the named schemas, then create the resource schema if it is missing."""
    for schema in args:
        _execute(connection, DROP_SCHEMA_SQL.format(schema))
    _execute(connection, CREATE_SCHEMA_SQL)


class Transaction:
    """A unit of work on the store; use it as a context manager to commit or roll back."""

    def __init__(self, connection: Any, meta: ResourceMeta) -> None:
        self._connection = connection
        self._meta = meta
        self._closed = False

    def _check(self) -> None:
        if self._closed:
            raise RuntimeError("transaction is already closed")

    def _query(self, cls: type, sql: str, args: Sequence[Any]) -> list[ResourceBase]:
        self._check()
        description, rows = _fetch(self._connection, sql, args)
        return rows_to_resources(cls, description or [], rows)

    def _scalar(self, sql: str, args: Sequence[Any], default: Any) -> Any:
        self._check()
        _, rows = _fetch(self._connection, sql, args)
        value = default
        for row in rows:
            value = row[0]
        return value

    def insert(self, resource: ResourceBase) -> ResourceBase:
        """Store a resource, stamping its creation time and id; return it."""
        self._check()
        resource.creation_timestamp = datetime.now(timezone.utc)
        sql, args = insert_sql_and_args(self._meta, resource)
        _execute(self._connection, sql, args)
        return resource

    def get(self, typ: str, conds: Mapping[str, Any] | None = None) -> list[ResourceBase]:
        """Return the resources of a kind matching conds."""
        return self.fill(self._meta.get_resource_class(typ), conds)

    def fill(self, cls: type, conds: Mapping[str, Any] | None = None) -> list[ResourceBase]:
        """Return resources of class cls matching conds."""
        sql, args = select_sql_and_args(self._meta, resource_db_type(cls), conds)
        return self._query(cls, sql, args)

    def get_owned(self, owner: str, owner_id: str, owned: str) -> list[ResourceBase]:
        """Return the resources of kind owned linked to one owner through their relation."""
        return self.fill_owned(owner, owner_id, self._meta.get_resource_class(owned))

    def fill_owned(self, owner: str, owner_id: str, cls: type) -> list[ResourceBase]:
        """Return resources of class cls linked to one owner through their relation."""
        sql, args = join_select_sql_and_args(
            self._meta, owner, resource_db_type(cls), owner_id
        )
        return self._query(cls, sql, args)

    def exists(self, typ: str, conds: Mapping[str, Any] | None = None) -> bool:
        """Tell whether a resource of a kind matches conds."""
        sql, args = exists_sql_and_args(self._meta, typ, conds)
        return bool(self._scalar(sql, args, False))

    def count(self, typ: str, conds: Mapping[str, Any] | None = None) -> int:
        """Count the resources of a kind matching conds."""
        sql, args = count_sql_and_args(self._meta, typ, conds)
        return int(self._scalar(sql, args, 0))

    def count_ex(self, typ: str, sql: str, *args: Any) -> int:
        """Run a counting statement for a known kind."""
        if not self._meta.has(typ):
            raise ValueError(f"unknown resource type {typ}")
        return int(self._scalar(sql, args, 0))

    def update(
        self, typ: str, new_values: Mapping[str, Any], conds: Mapping[str, Any]
    ) -> int:
        """Set new_values on matching resources; return the number changed."""
        sql, args = update_sql_and_args(self._meta, typ, new_values, conds)
        return self.exec(sql, *args)

    def delete(self, typ: str, conds: Mapping[str, Any] | None = None) -> int:
        """Delete matching resources; return the number deleted."""
        sql, args = delete_sql_and_args(self._meta, typ, conds)
        return self.exec(sql, *args)

    def get_ex(self, typ: str, sql: str, *args: Any) -> list[ResourceBase]:
        """Run a select statement and build resources of a kind from its rows."""
        return self.fill_ex(self._meta.get_resource_class(typ), sql, *args)

    def fill_ex(self, cls: type, sql: str, *args: Any) -> list[ResourceBase]:
        """Run a select statement and build resources of class cls from its rows."""
        return self._query(cls, sql, args)

    def exec(self, sql: str, *args: Any) -> int:
        """Run a statement; return the number of rows it affected."""
        self._check()
        return _execute(self._connection, sql, args)

    def commit(self) -> None:
        """Make the work permanent and close the transaction."""
        self._check()
        self._closed = True
        self._connection.commit()

    def rollback(self) -> None:
        """Discard the work and close the transaction."""
        self._check()
        self._closed = True
        self._connection.rollback()

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> bool:
        if not self._closed:
            if exc_type is None:
                self.commit()
            else:
                self.rollback()
        return False


class RStore:
    """Resource tables in PostgreSQL, created on open unless the server is in recovery."""

    def __init__(self, connection: Any, meta: ResourceMeta, *args: str) -> None:
        """Open the store; args names schemas to drop before the tables are created."""
        self._connection = connection
        self._meta = meta
        try:
            if not db_is_recovery_mode(connection):
                init_schema(connection, *args)
                for descriptor in meta.get_descriptors():
                    _execute(connection, create_table_sql(descriptor))
                connection.commit()
        except Exception:
            connection.close()
            raise

    @property
    def meta(self) -> ResourceMeta:
        """The registered resource kinds."""
        return self._meta

    def close(self) -> None:
        """Close the connection."""
        self._connection.close()

    def clean(self) -> None:
        """Drop every resource table, dependants first; failures are ignored."""
        for typ in reversed(self._meta.resource_types()):
            with suppress(Exception):
                _execute(self._connection, f"DROP TABLE IF EXISTS {table_name(typ)} CASCADE")
        with suppress(Exception):
            self._connection.commit()

    def begin(self) -> Transaction:
        """Start a transaction."""
        return Transaction(self._connection, self._meta)


def with_tx(store: RStore, func: Callable[[Transaction], T]) -> T:
    """Run func in a transaction, committing on success and rolling back on error."""
    tx = store.begin()
    try:
        result = func(tx)
    except BaseException:
        tx.rollback()
        raise
    tx.commit()
    return result


def get_resource_with_id(store: RStore, cls: type, resource_id: str) -> ResourceBase:
    """Return the single resource of class cls with the given id."""
    resources = with_tx(store, lambda tx: tx.fill(cls, {ID_FIELD: resource_id}))
    if len(resources) != 1:
        raise LookupError("not found")
    return resources[0]