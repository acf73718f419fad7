from dataclasses import dataclass, field
from datetime import datetime, timezone

import pytest

from restgrove.db.meta import ResourceMeta
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
    where_clause,
)
from restgrove.resource import ResourceBase


@dataclass(kw_only=True)
class Mother(ResourceBase):
    age: int = 0
    name: str = ""


@dataclass(kw_only=True)
class Child(ResourceBase):
    name: str = field(default="", metadata={"db": "uk"})
    age: int = field(default=0, metadata={"db": "positive"})
    nickname: str = field(default="", metadata={"db": "suk"})
    hobbies: list[str] = field(default_factory=list)
    classroom: str = field(default="", metadata={"db": "-"})


@dataclass(kw_only=True)
class MotherChild(ResourceBase):
    mother: str = field(default="", metadata={"db": "ownby"})
    child: str = field(default="", metadata={"db": "referto"})


@pytest.fixture
def meta():
    return ResourceMeta([Mother, Child, MotherChild])


def test_table_name():
    assert table_name("child") == "gr.child"


def test_create_table_simple(meta):
    sql = create_table_sql(meta.get_descriptor("mother"))
    assert sql == (
        "create table if not exists gr.mother (id text,create_time timestamp with time zone,"
        "age bigint,name text,primary key (id))"
    )


def test_create_table_constraints(meta):
    sql = create_table_sql(meta.get_descriptor("child"))
    assert sql.startswith("create table if not exists gr.child (")
    assert "age bigint check(age > 0)" in sql
    assert "nickname text unique" in sql
    assert "hobbies text[]" in sql
    assert "classroom" not in sql
    assert sql.endswith("unique (name))")


def test_create_table_references(meta):
    sql = create_table_sql(meta.get_descriptor("mother_child"))
    assert "mother text not null references gr.mother (id) on delete cascade" in sql
    assert "child text not null references gr.child (id) on delete restrict" in sql
    assert ",)" not in sql


def test_insert_uses_given_id(meta):
    mother = Mother(age=3, name="lxq")
    mother.id = "m1"
    sql, args = insert_sql_and_args(meta, mother)
    assert sql == "insert into gr.mother values( $1,$2,$3,$4 )"
    assert args[0] == "m1"
    assert args[2:] == [3, "lxq"]


def test_insert_generates_id(meta):
    mother = Mother(name="m")
    _, args = insert_sql_and_args(meta, mother)
    assert mother.id
    assert args[0] == mother.id


def test_insert_owner_and_refer_last(meta):
    link = MotherChild(mother="m1", child="c1")
    link.id = "l1"
    sql, args = insert_sql_and_args(meta, link)
    assert sql.count("$") == len(args)
    assert args[-2:] == ["m1", "c1"]


def test_insert_unknown_kind():
    with pytest.raises(ValueError):
        insert_sql_and_args(ResourceMeta([Mother]), Child())


def test_select_without_conditions(meta):
    sql, args = select_sql_and_args(meta, "child", None)
    assert "gr.child" in sql
    assert sql.endswith("order by id")
    assert "where" not in sql
    assert args == []


def test_select_with_paging_and_order(meta):
    conds = {"offset": 10, "limit": 20, "orderby": "age", "name": "ben"}
    sql, args = select_sql_and_args(meta, "mother", conds)
    assert "where name=$1" in sql
    assert "order by age" in sql
    assert sql.endswith("limit 20 offset 10")
    assert args == ["ben"]
    assert set(conds) == {"offset", "limit", "orderby", "name"}


def test_select_order_must_be_string(meta):
    with pytest.raises(TypeError):
        select_sql_and_args(meta, "mother", {"orderby": 3})


def test_select_unknown_kind(meta):
    with pytest.raises(ValueError):
        select_sql_and_args(meta, "nothing", {})


def test_where_clause_empty():
    assert where_clause({}) == ("", [])
    assert where_clause(None) == ("", [])


def test_where_clause_search_and_match_list():
    where, args = where_clause(
        {"name": "be", "age": "1,2", "search": "name", "match_list": "age"}
    )
    assert where == "name like $1 and ( age=$2 or age=$3)"
    assert args == ["%be%", "1", "2"]


def test_where_clause_snake_keys():
    where, args = where_clause({"nodeCount": 3})
    assert where.startswith("node_count=")
    assert args == [3]


def test_where_clause_search_not_string():
    with pytest.raises(TypeError):
        where_clause({"age": 3, "search": "age"})


def test_where_clause_match_not_string():
    with pytest.raises(TypeError):
        where_clause({"age": 3, "match_list": "age"})


def test_delete(meta):
    assert delete_sql_and_args(meta, "mother", {}) == ("delete from gr.mother", [])
    sql, args = delete_sql_and_args(meta, "mother", {"name": "a", "age": 2})
    assert sql.endswith("where name=$1 and age=$2")
    assert args == ["a", 2]


def test_exists(meta):
    sql, args = exists_sql_and_args(meta, "child", None)
    assert "gr.child" in sql and "where" not in sql
    assert args == []
    sql, args = exists_sql_and_args(meta, "child", {"name": "ben"})
    assert "where name=$1 limit 1" in sql
    assert args == ["ben"]


def test_count(meta):
    sql, args = count_sql_and_args(meta, "child", {})
    assert sql.startswith("select count(*) from gr.child")
    assert args == []
    sql, args = count_sql_and_args(meta, "child", {"hobbies": ["a", "b"]})
    assert sql.endswith("where hobbies=$1")
    assert args == [["a", "b"]]


def test_update(meta):
    sql, args = update_sql_and_args(meta, "mother", {"name": "x", "age": 4}, {"id": "m1"})
    assert "set name=$1,age=$2 where id=$3" in sql
    assert args == ["x", 4, "m1"]


def test_update_requires_values_and_conditions(meta):
    with pytest.raises(ValueError):
        update_sql_and_args(meta, "mother", {}, {"id": "m1"})
    with pytest.raises(ValueError):
        update_sql_and_args(meta, "mother", {"name": "x"}, {})


def test_join(meta):
    sql, args = join_select_sql_and_args(meta, "mother", "child", "m1")
    assert sql.startswith("select gr.child.* from gr.child inner join gr.mother_child")
    assert "gr.mother_child.mother=$1" in sql
    assert args == ["m1"]


def test_join_needs_relation(meta):
    with pytest.raises(ValueError):
        join_select_sql_and_args(meta, "child", "mother", "c1")


def test_rows_to_resources():
    stamp = datetime(2020, 1, 2, tzinfo=timezone.utc)
    rows = [("m1", stamp, 3, "a"), ("m2", stamp, 4, "b")]
    mothers = rows_to_resources(Mother, ["id", "create_time", "age", "name"], rows)
    assert [m.id for m in mothers] == ["m1", "m2"]
    assert [m.age for m in mothers] == [3, 4]
    assert mothers[1].name == "b"
    assert mothers[0].creation_timestamp == stamp


def test_rows_to_resources_with_descriptions():
    mothers = rows_to_resources(Mother, [("age", None)], [(7,)])
    assert mothers[0].age == 7
    assert mothers[0].id == ""
    assert mothers[0].creation_timestamp is None


def test_rows_round_trip_insert(meta):
    mother = Mother(age=9, name="n")
    mother.id = "m9"
    _, args = insert_sql_and_args(meta, mother)
    back = rows_to_resources(Mother, ["id", "create_time", "age", "name"], [args])
    assert back[0] == mother


def test_rows_to_resources_unknown_column():
    with pytest.raises(ValueError):
        rows_to_resources(Mother, ["height"], [(1,)])


def test_rows_to_resources_needs_resource_class():
    with pytest.raises(TypeError):
        rows_to_resources(dict, ["id"], [("x",)])