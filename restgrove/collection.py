"""Collections of resources returned by list handlers, with pagination."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from restgrove.context import Context, Pagination
from restgrove.resource import ResourceBase, default_kind_name


@dataclass
class ResourceCollection:
    """A page of resources of one kind."""

    type: str = ""
    resource_type: str = ""
    links: dict = field(default_factory=dict)
    pagination: Pagination | None = None
    resources: list[ResourceBase] = field(default_factory=list)
    collection: Any = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form of the collection."""
        out: dict[str, Any] = {}
        if self.type:
            out["type"] = self.type
        if self.resource_type:
            out["resourceType"] = self.resource_type
        if self.links:
            out["links"] = {
                (k.value if isinstance(k, Enum) else str(k)): v for k, v in self.links.items()
            }
        if self.pagination is not None:
            out["pagination"] = _pagination_to_dict(self.pagination)
        out["data"] = [resource.to_dict() for resource in self.resources]
        return out

    def to_json(self) -> str:
        """Return the collection as compact JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"))


def _pagination_to_dict(pagination: Pagination) -> dict[str, int]:
    pairs = (
        ("pageTotal", pagination.page_total),
        ("pageNum", pagination.page_num),
        ("pageSize", pagination.page_size),
        ("total", pagination.total),
    )
    return {key: value for key, value in pairs if value}


def _to_resources(typ: str, items: Any) -> list[ResourceBase]:
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        raise TypeError(f"list handler doesn't return a list but {type(items).__name__}")
    resources = []
    for item in items:
        if item is None:
            raise ValueError("resource is None")
        if not isinstance(item, ResourceBase):
            raise TypeError(f"resource isn't a resource but {type(item).__name__}")
        kind = default_kind_name(item)
        if kind != typ:
            raise ValueError(f"resource with kind {kind} isn't same with the collection {typ}")
        item.type = typ
        resources.append(item)
    return resources


def new_resource_collection(ctx: Context, items: Any) -> ResourceCollection:
    """Wrap what a list handler returned, applying the context's pagination."""
    typ = ctx.resource.type
    resources = _to_resources(typ, items)
    page, pagination = apply_pagination(ctx.pagination, resources)
    return ResourceCollection(
        type="collection",
        resource_type=typ,
        pagination=pagination,
        resources=page,
        collection=ctx.resource,
    )


def apply_pagination(
    pagination: Pagination | None, resources: list[ResourceBase]
) -> tuple[list[ResourceBase], Pagination | None]:
    """Return the requested page and the pagination describing it.

    Nothing is cut when there are no resources, no usable page request,
    or the pagination was already worked out.
    """
    count = len(resources)
    if (
        count == 0
        or pagination is None
        or pagination.page_size <= 0
        or pagination.page_num <= 0
        or pagination.page_total != 0
    ):
        return resources, pagination

    page_size = min(pagination.page_size, count)
    page_total = -(-count // page_size)
    page_num = min(pagination.page_num, page_total)
    start = (page_num - 1) * page_size
    end = min(start + page_size, count)
    return resources[start:end], Pagination(
        page_total=page_total, page_num=page_num, page_size=page_size, total=count
    )