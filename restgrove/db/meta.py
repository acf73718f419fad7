"""Database description of resource kinds: columns, keys and relations."""

from __future__ import annotations

import dataclasses
import re
import types
import typing
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from ipaddress import (
    IPv4Address,
    IPv4Interface,
    IPv4Network,
    IPv6Address,
    IPv6Interface,
    IPv6Network,
)
from typing import Any

from restgrove.resource import ResourceBase

ID_FIELD = "id"
CREATE_TIME_FIELD = "create_time"
DB_TAG = "db"
DATATYPE_KEY = "datatype"

_BASE_FIELDS = frozenset(f.name for f in dataclasses.fields(ResourceBase))


class Datatype(IntEnum):
    """Column types a resource field can be stored as."""

    SMALL_INT = 0
    BIG_INT = 1
    SUPER_INT = 2
    FLOAT32 = 3
    BOOL = 4
    STRING = 5
    TIME = 6
    IP = 7
    IP_NET = 8
    SMALL_INT_ARRAY = 9
    BIG_INT_ARRAY = 10
    SUPER_INT_ARRAY = 11
    FLOAT32_ARRAY = 12
    STRING_ARRAY = 13
    IP_SLICE = 14
    IP_NET_SLICE = 15

    @property
    def postgres_type(self) -> str:
        """The PostgreSQL column type for this datatype."""
        return POSTGRESQL_TYPES[self]


POSTGRESQL_TYPES = {
    Datatype.BOOL: "boolean",
    Datatype.SMALL_INT: "integer",
    Datatype.BIG_INT: "bigint",
    Datatype.SUPER_INT: "numeric",
    Datatype.FLOAT32: "float4",
    Datatype.STRING: "text",
    Datatype.TIME: "timestamp with time zone",
    Datatype.IP: "inet",
    Datatype.IP_NET: "inet",
    Datatype.SMALL_INT_ARRAY: "integer[]",
    Datatype.BIG_INT_ARRAY: "bigint[]",
    Datatype.SUPER_INT_ARRAY: "numeric[]",
    Datatype.FLOAT32_ARRAY: "float4[]",
    Datatype.STRING_ARRAY: "text[]",
    Datatype.IP_SLICE: "inet[]",
    Datatype.IP_NET_SLICE: "inet[]",
}


class Check(str, Enum):
    """Column check constraints."""

    NO_CHECK = ""
    POSITIVE = "positive"


_SCALAR_TYPES = {
    bool: Datatype.BOOL,
    int: Datatype.BIG_INT,
    float: Datatype.FLOAT32,
    str: Datatype.STRING,
    datetime: Datatype.TIME,
    IPv4Address: Datatype.IP,
    IPv6Address: Datatype.IP,
    IPv4Network: Datatype.IP_NET,
    IPv6Network: Datatype.IP_NET,
    IPv4Interface: Datatype.IP_NET,
    IPv6Interface: Datatype.IP_NET,
    bytes: Datatype.SMALL_INT_ARRAY,
}

_ARRAY_TYPES = {
    int: Datatype.BIG_INT_ARRAY,
    float: Datatype.FLOAT32_ARRAY,
    str: Datatype.STRING_ARRAY,
    IPv4Address: Datatype.IP_SLICE,
    IPv6Address: Datatype.IP_SLICE,
    IPv4Network: Datatype.IP_NET_SLICE,
    IPv6Network: Datatype.IP_NET_SLICE,
    IPv4Interface: Datatype.IP_NET_SLICE,
    IPv6Interface: Datatype.IP_NET_SLICE,
}


@dataclass
class ResourceField:
    """One stored column of a resource."""

    name: str
    type: Datatype
    unique: bool = False
    check: Check = Check.NO_CHECK


@dataclass(frozen=True)
class ResourceRelationship:
    """A many-to-many link kind between an owner and a referred kind."""

    typ: str
    owner: str
    refer: str


@dataclass
class ResourceDescriptor:
    """Everything needed to lay out the table of a resource kind."""

    typ: str
    fields: list[ResourceField] = field(default_factory=list)
    pks: list[str] = field(default_factory=list)
    uks: list[str] = field(default_factory=list)
    owners: list[str] = field(default_factory=list)
    refers: list[str] = field(default_factory=list)
    is_relationship: bool = False

    def relationship(self) -> ResourceRelationship | None:
        """Return the relationship this kind stands for, if it is one."""
        if not self.is_relationship:
            return None
        return ResourceRelationship(self.typ, self.owners[0], self.refers[0])


_WORD_START = re.compile(r"([^_])([A-Z][a-z]+)")
_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")


def to_snake(name: str) -> str:
    """Convert a CamelCase name to snake_case; snake names are unchanged."""
    return _LOWER_UPPER.sub(r"\1_\2", _WORD_START.sub(r"\1_\2", name)).lower()


def tag_contains(tag: str | None, option: str) -> bool:
    """Tell whether a comma separated tag holds option."""
    if not tag:
        return False
    return option in tag.split(",")


def _resource_class(resource: Any) -> type:
    cls = resource if isinstance(resource, type) else type(resource)
    if not (issubclass(cls, ResourceBase) and dataclasses.is_dataclass(cls)):
        raise TypeError(f"need a resource dataclass but get {cls.__name__}")
    return cls


def resource_db_type(resource: Any) -> str:
    """Return the table kind of a resource class or instance."""
    return to_snake(_resource_class(resource).__name__)


def _declared_names(cls: type) -> set[str]:
    names: set[str] = set()
    for klass in cls.__mro__:
        if klass is ResourceBase or not isinstance(klass, type):
            continue
        if issubclass(klass, ResourceBase):
            names.update(vars(klass).get("__annotations__", {}))
    return names


def _own_fields(cls: type) -> list[dataclasses.Field]:
    declared = _declared_names(cls)
    return [
        f
        for f in dataclasses.fields(cls)
        if f.name not in _BASE_FIELDS or f.name in declared
    ]


def _db_tag(f: dataclasses.Field) -> str:
    return f.metadata.get(DB_TAG, "") or ""


def resource_to_map(resource: Any) -> dict[str, Any]:
    """Return the stored values of a resource, keyed by column, without id and create_time."""
    if isinstance(resource, type):
        raise TypeError(f"need a resource instance but get class {resource.__name__}")
    cls = _resource_class(resource)
    values: dict[str, Any] = {}
    for f in _own_fields(cls):
        if tag_contains(_db_tag(f), "-"):
            continue
        name = to_snake(f.name)
        if name in (ID_FIELD, CREATE_TIME_FIELD):
            continue
        values[name] = getattr(resource, f.name)
    return values


def _unwrap_optional(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _lookup(table: dict, annotation: Any) -> Datatype | None:
    if not isinstance(annotation, type):
        return None
    if annotation in table:
        return table[annotation]
    for base, datatype in table.items():
        if issubclass(annotation, base):
            return datatype
    return None


def _parse_field(name: str, annotation: Any, override: Datatype | None) -> ResourceField:
    if override is not None:
        return ResourceField(name=name, type=Datatype(override))
    annotation = _unwrap_optional(annotation)
    origin = typing.get_origin(annotation)
    if origin in (list, tuple):
        args = [a for a in typing.get_args(annotation) if a is not Ellipsis]
        element = _unwrap_optional(args[0]) if args else None
        datatype = _lookup(_ARRAY_TYPES, element)
        if datatype is None:
            raise TypeError(f"type of field {name} isn't supported:[{element!r}]")
        return ResourceField(name=name, type=datatype)
    datatype = _lookup(_SCALAR_TYPES, annotation)
    if datatype is None:
        raise TypeError(f"type of field {name} isn't supported:{annotation!r}")
    return ResourceField(name=name, type=datatype)


def _gen_descriptor(resource: Any) -> ResourceDescriptor:
    cls = _resource_class(resource)
    columns = [
        ResourceField(name=ID_FIELD, type=Datatype.STRING),
        ResourceField(name=CREATE_TIME_FIELD, type=Datatype.TIME),
    ]
    pks = [ID_FIELD]
    uks: list[str] = []
    owners: list[str] = []
    refers: list[str] = []

    for f in _own_fields(cls):
        name = to_snake(f.name)
        if name in (ID_FIELD, CREATE_TIME_FIELD):
            raise ValueError(
                "has duplicate id or createTime field which already exists in resource base"
            )
        tag = _db_tag(f)
        if tag_contains(tag, "-"):
            continue
        if tag_contains(tag, "ownby"):
            owners.append(name)
        elif tag_contains(tag, "referto"):
            refers.append(name)
        else:
            try:
                column = _parse_field(name, f.type, f.metadata.get(DATATYPE_KEY))
            except TypeError as err:
                warnings.warn(f"field {name} parse failed {err}", stacklevel=3)
            else:
                column.unique = tag_contains(tag, "suk")
                if tag_contains(tag, "positive"):
                    column.check = Check.POSITIVE
                columns.append(column)

        if tag_contains(tag, "pk"):
            pks.append(name)
        elif tag_contains(tag, "uk"):
            uks.append(name)

    return ResourceDescriptor(
        typ=resource_db_type(cls),
        fields=columns,
        pks=pks,
        uks=uks,
        owners=owners,
        refers=refers,
        is_relationship=len(columns) == 1 and len(owners) == 1 and len(refers) == 1,
    )


class ResourceMeta:
    """Registered resource kinds in dependency order."""

    def __init__(self, resources: Any = ()) -> None:
        self._order: list[str] = []
        self._descriptors: dict[str, ResourceDescriptor] = {}
        self._classes: dict[str, type] = {}
        for resource in resources:
            self.register(resource)

    def clear(self) -> None:
        """Forget every registered kind."""
        self._order.clear()
        self._descriptors.clear()
        self._classes.clear()

    def has(self, typ: str) -> bool:
        """Tell whether a kind is registered."""
        return typ in self._descriptors

    def get_resource_class(self, typ: str) -> type:
        """Return the class registered for a kind."""
        try:
            return self._classes[typ]
        except KeyError:
            raise ValueError(f"model {typ} is unknown") from None

    def register(self, resource: Any) -> None:
        """Register a resource class or instance; its owners and referred kinds must come first."""
        typ = resource_db_type(resource)
        if self.has(typ):
            raise ValueError(f"duplicate model:{typ}")
        descriptor = _gen_descriptor(resource)
        for dependency in descriptor.owners + descriptor.refers:
            if not self.has(dependency):
                raise ValueError(f"model {typ} refer to {dependency} is unknown")
        self._order.append(typ)
        self._descriptors[typ] = descriptor
        self._classes[typ] = _resource_class(resource)

    def get_descriptor(self, typ: str) -> ResourceDescriptor:
        """Return the descriptor of a kind."""
        try:
            return self._descriptors[typ]
        except KeyError:
            raise ValueError(f"model {typ} is unknown") from None

    def get_descriptors(self) -> list[ResourceDescriptor]:
        """Return all descriptors in registration order."""
        return [self._descriptors[typ] for typ in self._order]

    def resource_types(self) -> list[str]:
        """Return the registered kinds in registration order."""
        return list(self._order)