"""Resource model: kinds, the base resource, API versions, actions and routes."""

from __future__ import annotations

import dataclasses
import posixpath
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Protocol

GROUP_PREFIX = "/apis"
SUPPORTED_METHODS = ("GET", "PUT", "DELETE", "POST")


class ResourceLinkType(str, Enum):
    """Kinds of links attached to a resource."""

    SELF = "self"
    UPDATE = "update"
    REMOVE = "remove"
    COLLECTION = "collection"


@dataclass
class Action:
    """A named action on a resource with optional input and output."""

    name: str = field(default="", metadata={"json": "name"})
    input: Any = field(default=None, metadata={"json": "input,omitempty"})
    output: Any = field(default=None, metadata={"json": "output,omitempty"})


@dataclass(frozen=True)
class APIVersion:
    """An API group and version, which together locate a URL prefix."""

    group: str = ""
    version: str = ""

    def get_url(self) -> str:
        """Return the URL prefix for this group and version."""
        parts = [part for part in (GROUP_PREFIX, self.group, self.version) if part]
        return posixpath.normpath("/".join(parts))


_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"
    r"(?:(Z)|([+-])(\d{2}):(\d{2}))\Z"
)


def format_iso_time(value: datetime | None) -> str | None:
    """Format a timestamp as RFC 3339 with second precision; None stays None."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    stamp = value.replace(microsecond=0, tzinfo=None).isoformat()
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return stamp + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = int(abs(offset).total_seconds()) // 60
    return f"{stamp}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def parse_iso_time(text: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp; "null" or None gives None."""
    if text is None or text == "null":
        return None
    match = _RFC3339.match(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 time: {text!r}")
    year, month, day, hour, minute, second = (int(g) for g in match.group(1, 2, 3, 4, 5, 6))
    fraction = match.group(7) or "0"
    microsecond = int(fraction[:6].ljust(6, "0"))
    if match.group(8):
        tz = timezone.utc
    else:
        offset = timedelta(hours=int(match.group(10)), minutes=int(match.group(11)))
        tz = timezone(-offset if match.group(9) == "-" else offset)
    return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)


def _json_spec(f: dataclasses.Field) -> tuple[str, bool] | None:
    tag = f.metadata.get("json")
    if tag is None:
        return f.name, False
    if tag == "-":
        return None
    name, _, options = tag.partition(",")
    return name or f.name, "omitempty" in options.split(",")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset, int, float)):
        return not value
    return False


def _json_key(key: Any) -> str:
    return key.value if isinstance(key, Enum) else str(key)


def _to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_iso_time(value)
    if isinstance(value, ResourceBase):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _dataclass_to_dict(value)
    if isinstance(value, dict):
        return {_json_key(k): _to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(item) for item in value]
    return value


def _dataclass_to_dict(obj: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in dataclasses.fields(obj):
        spec = _json_spec(f)
        if spec is None:
            continue
        key, omit_empty = spec
        value = getattr(obj, f.name)
        if omit_empty and _is_empty(value):
            continue
        out[key] = _to_json_value(value)
    return out


@dataclass(kw_only=True)
class ResourceBase:
    """Common state of every resource; subclasses add their own fields."""

    id: str = field(default="", metadata={"json": "id,omitempty"})
    type: str = field(default="", metadata={"json": "type,omitempty"})
    links: dict = field(default_factory=dict, metadata={"json": "links,omitempty"})
    creation_timestamp: datetime | None = field(
        default=None, metadata={"json": "creationTimestamp"}
    )
    deletion_timestamp: datetime | None = field(
        default=None, metadata={"json": "deletionTimestamp"}
    )
    action: Action | None = field(
        default=None, repr=False, compare=False, metadata={"json": "-"}
    )
    parent: ResourceBase | None = field(
        default=None, repr=False, compare=False, metadata={"json": "-"}
    )
    schema: Any = field(default=None, repr=False, compare=False, metadata={"json": "-"})

    def get_parents(self) -> list[type]:
        """Return the kinds this kind is nested under."""
        return []

    def create_default_resource(self) -> ResourceBase | None:
        """Return a resource holding default field values, if the kind has one."""
        return None

    def get_actions(self) -> list[Action]:
        """Return the actions this kind supports."""
        return []

    def support_async_delete(self) -> bool:
        """Tell whether deletion completes asynchronously."""
        return False

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready form of the resource."""
        return _dataclass_to_dict(self)


class ResourceRoute(dict):
    """Mapping of HTTP method to the paths served for it."""

    def merge(self, other: dict) -> ResourceRoute:
        """Append the paths of other for each supported method; return self."""
        for method in SUPPORTED_METHODS:
            self.setdefault(method, []).extend(other.get(method, ()))
        return self

    def add_path_for_method(self, method: str, path: str) -> None:
        """Register a path for a method."""
        self.setdefault(method, []).append(path)


class Schema(Protocol):
    """A registered resource kind together with its handler."""

    @property
    def handler(self) -> Any:
        """The handler serving this kind."""
        ...

    def add_links_to_resource(self, resource: ResourceBase, scheme_and_host: str) -> None:
        """Set the links of a single resource."""
        ...

    def add_links_to_resource_collection(self, collection: Any, scheme_and_host: str) -> None:
        """Set the links of a collection and its members."""
        ...

    def write_json_doc(self, path: str) -> None:
        """Write the JSON description of this kind under path."""
        ...


class SchemaManager(Protocol):
    """Registry of resource kinds that builds resources from requests."""

    def import_kind(self, version: APIVersion, kind: Any, handler: Any) -> None:
        """Register a kind and its handler under an API version."""
        ...

    def must_import(self, version: APIVersion, kind: Any, handler: Any) -> None:
        """Register a kind, failing loudly on any error."""
        ...

    def create_resource_from_request(self, request: Any) -> ResourceBase:
        """Build the resource addressed by a request, with defaults and checks applied."""
        ...

    def generate_resource_route(self) -> ResourceRoute:
        """Return the routes for every registered kind."""
        ...

    def write_json_docs(self, version: APIVersion, path: str) -> None:
        """Write the JSON description of every kind of a version under path."""
        ...


def get_ancestors(resource: ResourceBase) -> list[ResourceBase]:
    """Return the parents of a resource, outermost first."""
    ancestors = []
    parent = resource.parent
    while parent is not None:
        ancestors.append(parent)
        parent = parent.parent
    ancestors.reverse()
    return ancestors


def default_kind_name(kind: Any) -> str:
    """Return the lower-case kind name of a resource class or instance."""
    cls = kind if isinstance(kind, type) else type(kind)
    if not issubclass(cls, ResourceBase):
        raise TypeError("invalid param, it's not a resource class or a resource instance")
    return cls.__name__.lower()