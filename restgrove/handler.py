"""Handlers that serve the operations of a resource kind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

HandlerFunc = Callable[[Any], Any]

_METHODS = (
    ("list", "list_handler"),
    ("get", "get_handler"),
    ("delete", "delete_handler"),
    ("update", "update_handler"),
    ("create", "create_handler"),
    ("action", "action_handler"),
)

_VARARGS_FLAG = 0x04


@dataclass(frozen=True)
class Handler:
    """The operations available on a kind; each takes a request context."""

    create_handler: Optional[HandlerFunc] = None
    delete_handler: Optional[HandlerFunc] = None
    update_handler: Optional[HandlerFunc] = None
    list_handler: Optional[HandlerFunc] = None
    get_handler: Optional[HandlerFunc] = None
    action_handler: Optional[HandlerFunc] = None


def _takes_context(method: Any) -> bool:
    """Tell whether method can be called with exactly one positional argument."""
    if not callable(method):
        return False
    func = getattr(method, "__func__", method)
    code = getattr(func, "__code__", None)
    if code is None:
        return True
    positional = code.co_argcount
    if func is not method:
        positional -= 1
    defaults = getattr(func, "__defaults__", None) or ()
    required = positional - len(defaults)
    if required > 1:
        return False
    kwdefaults = getattr(func, "__kwdefaults__", None) or {}
    required_kwonly = code.co_kwonlyargcount - len(kwdefaults)
    if required_kwonly > 0:
        return False
    return positional >= 1 or bool(code.co_flags & _VARARGS_FLAG)


def handler_adaptor(obj: Any) -> Handler:
    """Collect the list/get/delete/update/create/action methods of obj."""
    found = {}
    for name, slot in _METHODS:
        method = getattr(obj, name, None)
        if method is None:
            continue
        if not _takes_context(method):
            raise TypeError(f"handler has '{name}' method but with wrong signature")
        found[slot] = method
    if not found:
        raise TypeError("handler doesn't have any handle method")
    return Handler(**found)


def collection_methods(handler: Handler) -> list[str]:
    """Return the HTTP methods served on the collection path."""
    methods = []
    if handler.list_handler is not None:
        methods.append("GET")
    if handler.create_handler is not None:
        methods.append("POST")
    return methods


def resource_methods(handler: Handler) -> list[str]:
    """Return the HTTP methods served on a single resource path."""
    methods = []
    if handler.get_handler is not None:
        methods.append("GET")
    if handler.delete_handler is not None:
        methods.append("DELETE")
    if handler.update_handler is not None:
        methods.append("PUT")
    if handler.action_handler is not None:
        methods.append("POST")
    return methods