"""A small WSGI router and the glue that mounts a resource handler on it."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]

ROUTE_PARAMS_KEY = "restgrove.route_params"


def _match(pattern: str, path: str) -> dict[str, str] | None:
    if pattern == path:
        return {}
    wanted = pattern.split("/")
    parts = path.split("/")
    params: dict[str, str] = {}
    for position, segment in enumerate(wanted):
        if segment.startswith("*"):
            params[segment[1:]] = "/" + "/".join(parts[position:])
            return params
        if position >= len(parts):
            return None
        if segment.startswith(":"):
            if not parts[position]:
                return None
            params[segment[1:]] = parts[position]
        elif segment != parts[position]:
            return None
    return params if len(parts) == len(wanted) else None


class Router:
    """Dispatch WSGI requests by method and path; ':name' and '*name' capture segments."""

    def __init__(self) -> None:
        self._routes: dict[str, dict[str, WSGIApp]] = {}

    def _add(self, method: str, path: str, handler: WSGIApp) -> None:
        routes = self._routes.setdefault(method, {})
        if path in routes:
            raise ValueError(f"route {method} {path} is already registered")
        routes[path] = handler

    def get(self, path: str, handler: WSGIApp) -> None:
        """Serve GET requests for path."""
        self._add("GET", path, handler)

    def post(self, path: str, handler: WSGIApp) -> None:
        """Serve POST requests for path."""
        self._add("POST", path, handler)

    def put(self, path: str, handler: WSGIApp) -> None:
        """Serve PUT requests for path."""
        self._add("PUT", path, handler)

    def delete(self, path: str, handler: WSGIApp) -> None:
        """Serve DELETE requests for path."""
        self._add("DELETE", path, handler)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO") or "/"
        routes = self._routes.get(method, {})
        handler = routes.get(path)
        params: dict[str, str] = {}
        if handler is None:
            for pattern, candidate in routes.items():
                found = _match(pattern, path)
                if found is not None:
                    handler, params = candidate, found
                    break
        if handler is None:
            start_response("404 Not Found", [("Content-Type", "text/plain")])
            return [b"404 page not found"]
        environ[ROUTE_PARAMS_KEY] = params
        return handler(environ, start_response)


def register_handler(router: Any, handler: WSGIApp, route: Mapping[str, Iterable[str]]) -> None:
    """Mount handler on router for every path of every supported method in route."""
    registrars = {
        "POST": router.post,
        "DELETE": router.delete,
        "PUT": router.put,
        "GET": router.get,
    }
    for method, paths in route.items():
        register = registrars.get(method)
        if register is None:
            continue
        for path in paths:
            register(path, handler)