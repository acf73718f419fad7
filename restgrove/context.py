"""Request context: the resource addressed, query filters and pagination."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import parse_qs, urlsplit

FILTER_NAME_PAGE_SIZE = "page_size"
FILTER_NAME_PAGE_NUM = "page_num"

_INTEGER = re.compile(r"[+-]?\d+")


class Modifier(str, Enum):
    """Comparison a query filter applies to its values."""

    EQ = "eq"
    NE = "ne"
    LT = "lt"
    GT = "gt"
    LTE = "lte"
    GTE = "gte"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    LIKE = "like"
    NOT_LIKE = "notlike"
    NULL = "null"
    NOT_NULL = "notnull"


@dataclass
class Filter:
    """A query parameter split into field name, modifier and values."""

    name: str
    modifier: Modifier = Modifier.EQ
    values: list[str] = field(default_factory=list)


@dataclass
class Pagination:
    """Paging request and result; zero means unset."""

    page_total: int = 0
    page_num: int = 0
    page_size: int = 0
    total: int = 0


@dataclass
class Context:
    """Everything a handler needs to serve one request."""

    schemas: Any = None
    request: Any = None
    response: Any = None
    resource: Any = None
    method: str = ""
    params: dict[str, Any] = field(default_factory=dict)
    filters: list[Filter] = field(default_factory=list)
    pagination: Pagination | None = None

    def set(self, key: str, value: Any) -> None:
        """Store a value for later handlers."""
        self.params[key] = value

    def get(self, key: str) -> Any:
        """Return a stored value, or None if the key was never set."""
        return self.params.get(key)


def verify_modifier(text: str) -> Modifier:
    """Map a modifier suffix to a Modifier; anything unknown is EQ."""
    try:
        return Modifier(text)
    except ValueError:
        return Modifier.EQ


def _first_int(values: Iterable[str]) -> int:
    for value in values:
        if _INTEGER.fullmatch(value):
            return int(value)
    return 0


def parse_filters_and_pagination(
    query: str | Mapping[str, list[str]],
) -> tuple[list[Filter], Pagination]:
    """Split query parameters into filters and the requested pagination."""
    if isinstance(query, str):
        query = parse_qs(query, keep_blank_values=True)
    filters: list[Filter] = []
    pagination = Pagination()
    for key, values in query.items():
        item = Filter(name=key, modifier=Modifier.EQ, values=list(values))
        head, sep, suffix = key.rpartition("_")
        if sep:
            item.modifier = verify_modifier(suffix)
            if item.modifier is not Modifier.EQ or suffix == "eq":
                item.name = head
        if item.name == FILTER_NAME_PAGE_SIZE:
            pagination.page_size = _first_int(item.values)
        elif item.name == FILTER_NAME_PAGE_NUM:
            pagination.page_num = _first_int(item.values)
        else:
            filters.append(item)
    return filters, pagination


def new_context(response: Any, request: Any, schemas: Any) -> Context:
    """Build the context of a request; the request has `method` and `url`.

    Errors raised while the schemas build the resource propagate.
    """
    resource = schemas.create_resource_from_request(request)
    filters, pagination = parse_filters_and_pagination(urlsplit(request.url).query)
    return Context(
        schemas=schemas,
        request=request,
        response=response,
        resource=resource,
        method=request.method,
        filters=filters,
        pagination=pagination,
    )