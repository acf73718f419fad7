"""SQL statements built from resource descriptors, and rows turned back into resources."""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from restgrove.db.meta import (
    CREATE_TIME_FIELD,
    ID_FIELD,
    Check,
    ResourceDescriptor,
    ResourceMeta,
    resource_db_type,
    to_snake,
)
from restgrove.resource import ResourceBase

SCHEMA_NAME = "gr."

_JOIN_SQL = (
    "select {owned_table}.* from {owned_table} inner join {rel_table} "
    "on ({owned_table}.id={rel_table}.{owned} and {rel_table}.{owner}=$1)"
)


def table_name(typ: str) -> str:
    """Return the schema-qualified table of a resource kind."""
    return SCHEMA_NAME + typ


def _describe(meta: ResourceMeta, typ: str) -> ResourceDescriptor:
    try:
        return meta.get_descriptor(typ)
    except ValueError as err:
        raise ValueError(f"get descriptor for {typ} failed {err}") from None


def _column_attributes(cls: type) -> dict[str, str]:
    return {to_snake(f.name): f.name for f in dataclasses.fields(cls)}


def create_table_sql(descriptor: ResourceDescriptor) -> str:
    """Return the statement that creates the table of a kind if it is missing."""
    parts: list[str] = []
    for column in descriptor.fields:
        text = f"{column.name} {column.type.postgres_type}"
        if column.unique:
            text += " unique"
        if column.check is Check.POSITIVE:
            text += f" check({column.name} > 0)"
        parts.append(text)
    for owner in descriptor.owners:
        parts.append(
            f"{owner} text not null references {table_name(owner)} (id) on delete cascade"
        )
    for refer in descriptor.refers:
        parts.append(
            f"{refer} text not null references {table_name(refer)} (id) on delete restrict"
        )
    if descriptor.pks:
        parts.append(f"primary key ({','.join(descriptor.pks)})")
    if descriptor.uks:
        parts.append(f"unique ({','.join(descriptor.uks)})")
    return f"create table if not exists {table_name(descriptor.typ)} ({','.join(parts)})"


def insert_sql_and_args(meta: ResourceMeta, resource: ResourceBase) -> tuple[str, list[Any]]:
    """Return the insert statement and its values; a missing id is generated and set."""
    if isinstance(resource, type) or not isinstance(resource, ResourceBase):
        raise TypeError(f"{resource!r} is not a resource instance")
    typ = resource_db_type(resource)
    try:
        descriptor = meta.get_descriptor(typ)
    except ValueError as err:
        raise ValueError(f"get {typ} descriptor failed {err}") from None

    count = len(descriptor.fields) + len(descriptor.owners) + len(descriptor.refers)
    markers = ",".join(f"${i}" for i in range(1, count + 1))
    sql = " ".join(["insert into", table_name(descriptor.typ), "values(", markers, ")"])

    if not resource.id:
        resource.id = str(uuid.uuid4())

    attributes = _column_attributes(type(resource))
    args: list[Any] = []
    for column in descriptor.fields:
        if column.name == ID_FIELD:
            args.append(resource.id)
        elif column.name == CREATE_TIME_FIELD:
            args.append(resource.creation_timestamp)
        else:
            args.append(getattr(resource, attributes[column.name]))
    for name in (*descriptor.owners, *descriptor.refers):
        args.append(getattr(resource, attributes[name]))
    return sql, args


def _equalities(conds: Mapping[str, Any], start: int = 1) -> tuple[list[str], list[Any]]:
    clauses = [f"{to_snake(key)}=${start + n}" for n, key in enumerate(conds)]
    return clauses, list(conds.values())


def select_sql_and_args(
    meta: ResourceMeta, typ: str, conds: Mapping[str, Any] | None
) -> tuple[str, list[Any]]:
    """Return a select statement; 'orderby', 'limit' with 'offset', 'search' and 'match_list' are honoured."""
    descriptor = _describe(meta, typ)
    remaining = dict(conds or {})

    order = "order by id"
    if "orderby" in remaining:
        value = remaining["orderby"]
        if not isinstance(value, str):
            raise TypeError(f"order argument isn't string:{value!r}")
        order = f"order by {to_snake(value)}"
        del remaining["orderby"]

    limit = ""
    if "limit" in remaining and "offset" in remaining:
        count = remaining.pop("limit")
        offset = remaining.pop("offset")
        count = count if isinstance(count, int) and not isinstance(count, bool) else 0
        offset = offset if isinstance(offset, int) and not isinstance(offset, bool) else 0
        limit = f"limit {count} offset {offset}"

    where, args = where_clause(remaining)
    parts = ["select * from", table_name(descriptor.typ)]
    if where:
        parts += ["where", where]
    parts.append(order)
    if limit:
        parts.append(limit)
    return " ".join(parts), args


def delete_sql_and_args(
    meta: ResourceMeta, typ: str, conds: Mapping[str, Any] | None
) -> tuple[str, list[Any]]:
    """Return a delete statement matching every condition by equality."""
    descriptor = _describe(meta, typ)
    table = table_name(descriptor.typ)
    if not conds:
        return f"delete from {table}", []
    clauses, args = _equalities(conds)
    return f"delete from {table} where {' and '.join(clauses)}", args


def exists_sql_and_args(
    meta: ResourceMeta, typ: str, conds: Mapping[str, Any] | None
) -> tuple[str, list[Any]]:
    """Return a statement yielding whether a matching row exists."""
    descriptor = _describe(meta, typ)
    table = table_name(descriptor.typ)
    if not conds:
        return f"select (exists (select 1 from {table} limit 1))", []
    clauses, args = _equalities(conds)
    return f"select (exists (select 1 from {table} where {' and '.join(clauses)} limit 1))", args


def count_sql_and_args(
    meta: ResourceMeta, typ: str, conds: Mapping[str, Any] | None
) -> tuple[str, list[Any]]:
    """Return a statement counting the matching rows."""
    descriptor = _describe(meta, typ)
    table = table_name(descriptor.typ)
    where, args = where_clause(conds)
    if not where:
        return f"select count(*) from {table}", []
    return f"select count(*) from {table} where {where}", args


def update_sql_and_args(
    meta: ResourceMeta,
    typ: str,
    new_values: Mapping[str, Any],
    conds: Mapping[str, Any],
) -> tuple[str, list[Any]]:
    """Return an update statement setting new_values on rows matching conds."""
    descriptor = _describe(meta, typ)
    if not new_values:
        raise ValueError("update needs at least one new value")
    if not conds:
        raise ValueError("update needs at least one condition")
    sets, set_args = _equalities(new_values)
    clauses, where_args = _equalities(conds, start=len(sets) + 1)
    sql = (
        f"update {table_name(descriptor.typ)} set {','.join(sets)} "
        f"where {' and '.join(clauses)}"
    )
    return sql, set_args + where_args


def join_select_sql_and_args(
    meta: ResourceMeta, owner_type: str, owned_type: str, owner_id: str
) -> tuple[str, list[Any]]:
    """Return a select of the owned kind linked to one owner through their relation table."""
    relation_type = f"{owner_type.lower()}_{owned_type.lower()}"
    owned = _describe(meta, owned_type)
    relation = _describe(meta, relation_type)
    sql = _JOIN_SQL.format(
        owned_table=table_name(owned.typ),
        rel_table=table_name(relation.typ),
        owned=owned_type,
        owner=owner_type,
    )
    return sql, [owner_id]


def where_clause(conds: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
    """Return the where text and its values.

    'search' names comma separated keys matched with like, and 'match_list'
    names keys whose comma separated values are alternatives.
    """
    if not conds:
        return "", []
    remaining = dict(conds)

    search = remaining.pop("search", None)
    search_keys = set(search.split(",")) if isinstance(search, str) else set()
    match = remaining.pop("match_list", None)
    match_keys = set(match.split(",")) if isinstance(match, str) else set()

    clauses: list[str] = []
    args: list[Any] = []
    marker = 1
    for key, value in remaining.items():
        column = to_snake(key)
        if key in search_keys:
            if not isinstance(value, str):
                raise TypeError(f"search condition isn't string, but {value!r}")
            clauses.append(f"{column} like ${marker}")
            args.append(f"%{value}%")
            marker += 1
        elif key in match_keys:
            if not isinstance(value, str):
                raise TypeError(f"match condition isn't string, but {value!r}")
            alternatives = []
            for option in value.split(","):
                alternatives.append(f"{column}=${marker}")
                args.append(option)
                marker += 1
            clauses.append("( " + " or ".join(alternatives) + ")")
        else:
            clauses.append(f"{column}=${marker}")
            args.append(value)
            marker += 1
    return " and ".join(clauses), args


def _column_name(column: Any) -> str:
    return column if isinstance(column, str) else column[0]


def rows_to_resources(
    cls: type, columns: Sequence[Any], rows: Iterable[Sequence[Any]]
) -> list[ResourceBase]:
    """Build one resource of cls per row; columns are names or cursor descriptions."""
    if not (isinstance(cls, type) and issubclass(cls, ResourceBase)):
        raise TypeError("output isn't a resource class")
    names = [_column_name(column) for column in columns]
    attributes = _column_attributes(cls)
    resources = []
    for row in rows:
        resource = cls()
        resource_id = ""
        created = None
        for name, value in zip(names, row):
            if name == ID_FIELD:
                resource_id = value
            elif name == CREATE_TIME_FIELD:
                created = value
            else:
                try:
                    attribute = attributes[name]
                except KeyError:
                    raise ValueError(
                        f"column {name} has no field in {cls.__name__}"
                    ) from None
                setattr(resource, attribute, value)
        resource.id = resource_id
        resource.creation_timestamp = created
        resources.append(resource)
    return resources