from dataclasses import dataclass, field
from datetime import datetime
from ipaddress import IPv4Address, IPv4Network

import pytest

from restgrove.db.meta import (
    Check,
    Datatype,
    ResourceDescriptor,
    ResourceField,
    ResourceMeta,
    ResourceRelationship,
    resource_db_type,
    resource_to_map,
    tag_contains,
    to_snake,
)
from restgrove.resource import ResourceBase


@dataclass(kw_only=True)
class Child(ResourceBase):
    name: str = field(default="", metadata={"db": "uk"})
    age: int = 0
    hobbies: list[str] = field(default_factory=list)
    scores: list[int] = field(default_factory=list)
    birthday: datetime | None = None
    ipaddr: IPv4Address | None = None
    subnet: IPv4Network | None = None
    talented: bool = False


@dataclass(kw_only=True)
class Mother(ResourceBase):
    age: int = 0
    name: str = ""


@dataclass(kw_only=True)
class MotherChild(ResourceBase):
    mother: str = field(default="", metadata={"db": "ownby"})
    child: str = field(default="", metadata={"db": "referto"})


@dataclass(kw_only=True)
class View(ResourceBase):
    name: str = field(default="", metadata={"db": "uk"})


@dataclass(kw_only=True)
class Zone(ResourceBase):
    name: str = ""
    view: str = field(default="", metadata={"db": "ownby"})


@dataclass(kw_only=True)
class Student(ResourceBase):
    name: str = field(default="", metadata={"db": "uk"})
    age: int = 0
    classroom: str = field(default="", metadata={"db": "-"})


@dataclass(kw_only=True)
class Rdata(ResourceBase):
    name: str = field(default="", metadata={"db": "uk"})
    type: str = field(default="", metadata={"db": "uk"})
    rdata: str = field(default="", metadata={"db": "uk"})
    addrs: list[IPv4Address] = field(default_factory=list)


@dataclass(kw_only=True)
class Tagged(ResourceBase):
    code: str = field(default="", metadata={"db": "suk"})
    weight: int = field(default=0, metadata={"db": "positive,pk"})
    small: int = field(default=0, metadata={"datatype": Datatype.SMALL_INT})
    huge: list[int] = field(default_factory=list, metadata={"datatype": Datatype.SUPER_INT_ARRAY})


@dataclass(kw_only=True)
class WithMap(ResourceBase):
    name: str = ""
    extra: dict = field(default_factory=dict)


@dataclass(kw_only=True)
class BadCreateTime(ResourceBase):
    create_time: str = ""


@dataclass(kw_only=True)
class BadId(ResourceBase):
    id: str = ""


def test_to_snake():
    assert to_snake("MotherChild") == "mother_child"
    assert to_snake("Child") == "child"
    assert to_snake("create_time") == "create_time"


def test_resource_db_type_class_and_instance():
    assert resource_db_type(MotherChild) == "mother_child"
    assert resource_db_type(Child()) == "child"
    with pytest.raises(TypeError):
        resource_db_type(object())


@pytest.mark.parametrize(
    "tag, option, expected",
    [
        ("uk", "uk", True),
        ("ownby,pk", "pk", True),
        ("", "-", False),
        (None, "uk", False),
        ("suk", "uk", False),
        ("positive,suk", "suk", True),
    ],
)
def test_tag_contains(tag, option, expected):
    assert tag_contains(tag, option) is expected


def test_child_descriptor():
    meta = ResourceMeta([Child])
    d = meta.get_descriptor("child")
    assert [(f.name, f.type) for f in d.fields] == [
        ("id", Datatype.STRING),
        ("create_time", Datatype.TIME),
        ("name", Datatype.STRING),
        ("age", Datatype.BIG_INT),
        ("hobbies", Datatype.STRING_ARRAY),
        ("scores", Datatype.BIG_INT_ARRAY),
        ("birthday", Datatype.TIME),
        ("ipaddr", Datatype.IP),
        ("subnet", Datatype.IP_NET),
        ("talented", Datatype.BOOL),
    ]
    assert d.pks == ["id"]
    assert d.uks == ["name"]
    assert d.owners == [] and d.refers == []


def test_postgres_types():
    d = ResourceMeta([Child]).get_descriptor("child")
    columns = {f.name: f.type.postgres_type for f in d.fields}
    assert columns == {
        "id": "text",
        "create_time": "timestamp with time zone",
        "name": "text",
        "age": "bigint",
        "hobbies": "text[]",
        "scores": "bigint[]",
        "birthday": "timestamp with time zone",
        "ipaddr": "inet",
        "subnet": "inet",
        "talented": "boolean",
    }


def test_owners_and_refers():
    meta = ResourceMeta([Mother, Child, MotherChild])
    d = meta.get_descriptor("mother_child")
    assert d.owners == ["mother"]
    assert d.refers == ["child"]
    assert [f.name for f in d.fields] == ["id", "create_time"]


def test_tags_unique_check_pk_and_override():
    d = ResourceMeta([Tagged]).get_descriptor("tagged")
    by_name = {f.name: f for f in d.fields}
    assert by_name["code"].unique is True
    assert by_name["weight"].check is Check.POSITIVE
    assert by_name["weight"].unique is False
    assert by_name["small"].type is Datatype.SMALL_INT
    assert by_name["huge"].type is Datatype.SUPER_INT_ARRAY
    assert d.pks == ["id", "weight"]


def test_ignored_field():
    d = ResourceMeta([Student]).get_descriptor("student")
    assert "classroom" not in [f.name for f in d.fields]


def test_unsupported_field_warns_and_is_skipped():
    with pytest.warns(UserWarning, match="extra"):
        meta = ResourceMeta([WithMap])
    assert [f.name for f in meta.get_descriptor("with_map").fields] == ["id", "create_time", "name"]


@pytest.mark.parametrize("cls", [BadCreateTime, BadId])
def test_duplicate_base_field_rejected(cls):
    with pytest.raises(ValueError):
        ResourceMeta([cls])


def test_duplicate_registration():
    meta = ResourceMeta([View])
    with pytest.raises(ValueError, match="duplicate model:view"):
        meta.register(View)


def test_unknown_dependency():
    with pytest.raises(ValueError, match="zone refer to view is unknown"):
        ResourceMeta([Zone])
    meta = ResourceMeta([View, Zone])
    assert meta.resource_types() == ["view", "zone"]


def test_lookup_and_order():
    meta = ResourceMeta([Mother, Child, MotherChild])
    assert meta.has("child")
    assert not meta.has("zone")
    assert meta.get_resource_class("mother") is Mother
    assert [d.typ for d in meta.get_descriptors()] == meta.resource_types()
    with pytest.raises(ValueError):
        meta.get_resource_class("zone")
    with pytest.raises(ValueError):
        meta.get_descriptor("zone")


def test_clear():
    meta = ResourceMeta([Mother, Child])
    meta.clear()
    assert not meta.has("mother")
    assert meta.get_descriptors() == []
    meta.register(Mother)
    assert meta.resource_types() == ["mother"]


def test_resource_to_map():
    student = Student(name="ben", age=40, classroom="991")
    student.id = "s1"
    assert resource_to_map(student) == {"name": "ben", "age": 40}
    with pytest.raises(TypeError):
        resource_to_map(Student)


def test_relationship():
    plain = ResourceMeta([View]).get_descriptor("view")
    assert plain.relationship() is None
    rel = ResourceDescriptor(
        typ="mother_child",
        fields=[ResourceField(name="id", type=Datatype.STRING)],
        owners=["mother"],
        refers=["child"],
        is_relationship=True,
    )
    assert rel.relationship() == ResourceRelationship("mother_child", "mother", "child")