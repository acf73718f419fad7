# restgrove

Building blocks for resource-oriented REST services. The package has no
runtime dependencies.

- **Resources** (`restgrove.resource`): `ResourceBase` is a keyword-only
  dataclass. It carries the `id`, `type`, `links`, `creation_timestamp` and
  `deletion_timestamp` of a resource, and also its `parent`, `schema` and
  `action`. `to_dict()` gives the JSON-ready form, and timestamps are written
  as RFC 3339 through `format_iso_time`. `parse_iso_time` reads them back.
  `default_kind_name` turns a resource class or instance into its kind name,
  so `Deployment` becomes `"deployment"`. `get_ancestors` returns the parent
  chain with the outermost parent first. `APIVersion.get_url()` gives the URL
  prefix, such as `/apis/<group>/<version>`. `ResourceRoute` maps HTTP
  methods to paths. `Schema` and `SchemaManager` are typing protocols that
  describe a registry of kinds.
- **Handlers** (`restgrove.handler`): `handler_adaptor` collects the `list`,
  `get`, `delete`, `update`, `create` and `action` methods of any object into
  a `Handler`. It raises `TypeError` when the object has none of these
  methods. It also raises `TypeError` when one of them cannot be called with
  a single context argument. `collection_methods` and `resource_methods` list
  the HTTP methods the handler serves.
- **Requests** (`restgrove.context`): `new_context` builds a `Context` from a
  request object that has `method` and `url`, and from a schema manager.
  `parse_filters_and_pagination` turns query parameters into `Filter`s. A
  suffix such as `_ne`, `_gte` or `_like` sets the `Modifier`. The
  parameters `page_size` and `page_num` become a `Pagination`.
- **Collections** (`restgrove.collection`): `new_resource_collection` checks
  what a list handler returned and pages it into a `ResourceCollection`,
  using `apply_pagination`. The collection serialises with `to_dict()` and
  `to_json()`.
- **Routing** (`restgrove.adaptor`): `Router` is a small WSGI application.
  It dispatches on method and path, and paths may hold `:name` and `*name`
  segments. `register_handler` mounts one WSGI application on a router for
  every path of every method in a route.
- **Storage** (`restgrove.db`): `ResourceMeta` derives table descriptors
  from resource dataclasses. `restgrove.db.sql` builds PostgreSQL
  statements. `RStore` and `Transaction` run inserts, queries, counts,
  updates, deletes and many-to-many lookups.

## Installation

```
pip install restgrove
```

## Routing a WSGI application

```python
from restgrove.adaptor import Router, register_handler
from restgrove.resource import ResourceRoute

def app(environ, start_response):
    start_response("201 Created", [("Content-Type", "text/plain")])
    return [b"hello"]

route = ResourceRoute()
route.add_path_for_method("POST", "/path")

router = Router()
register_handler(router, app, route)
# `router` is itself a WSGI application. Unknown paths get a 404 response.
```

## Handlers

```python
from restgrove.handler import handler_adaptor, collection_methods, resource_methods

class ClusterHandler:
    def create(self, ctx): ...
    def list(self, ctx): ...

handler = handler_adaptor(ClusterHandler())
collection_methods(handler)   # ["GET", "POST"]
resource_methods(handler)     # []
```

## Pagination

```python
from restgrove.collection import apply_pagination
from restgrove.context import Pagination

page, info = apply_pagination(Pagination(page_size=10, page_num=5), resources)
```

With 55 resources this returns the ten items of page 5 of 6.

## Storing resources

Resource kinds are dataclasses that subclass `ResourceBase`. The column type
of each field comes from its annotation: `int`, `float`, `str`, `bool`,
`datetime`, `ipaddress` types, or lists of these. The `"db"` entry of a
field's metadata takes comma-separated options:

- `uk` puts the field in the table's unique key, and `pk` puts it in the
  primary key.
- `suk` makes the column unique on its own.
- `positive` adds a check that the value is greater than zero.
- `ownby` and `referto` make the column a reference to another kind.
- `-` leaves the field out of the table.

```python
from dataclasses import dataclass, field

from restgrove.db.meta import ResourceMeta
from restgrove.db.store import RStore, with_tx
from restgrove.resource import ResourceBase

@dataclass(kw_only=True)
class Mother(ResourceBase):
    name: str = ""

@dataclass(kw_only=True)
class Child(ResourceBase):
    name: str = field(default="", metadata={"db": "uk"})
    age: int = 0

@dataclass(kw_only=True)
class MotherChild(ResourceBase):
    mother: str = field(default="", metadata={"db": "ownby"})
    child: str = field(default="", metadata={"db": "referto"})

meta = ResourceMeta([Mother, Child, MotherChild])
store = RStore(connection, meta)

with store.begin() as tx:
    tx.insert(Child(name="ben", age=20))
    tx.count("child", None)
    tx.get_owned("mother", "m1", "child")

with_tx(store, lambda tx: tx.delete("child", {"name": "nana"}))
store.close()
```

Kinds must be registered after the kinds they own or refer to. `RStore`
works on an open DB-API connection, and that connection must accept `$1`
style markers. Tables live in the `gr` schema. They are created when the
store opens, unless the server is in recovery. A `Transaction` used as a
context manager commits when the block succeeds and rolls back when it
raises. `get_resource_with_id` raises `LookupError` when no single resource
matches.

## What the package does not do

- There is no concrete schema manager. `Schema` and `SchemaManager` only
  describe the interface, and `new_context` needs an object that provides
  `create_resource_from_request`.
- There is no API server that sends requests to handlers, adds links or
  writes JSON documentation. `Router` only dispatches WSGI requests to the
  applications mounted on it.
- No database driver is included. You open the connection yourself.