from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

PARAM_SIGIL = ":"

Handler = Callable[..., Awaitable[None]]


@dataclass(frozen=True)
class Route:
	method: str
	pattern: str
	handler: Handler
	requires_auth: bool = True


@dataclass(frozen=True)
class PathMatch:
	is_match: bool
	params: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RouteMatch:
	route: Route
	params: Dict[str, str]


_NO_MATCH = PathMatch(False)


def match_path(pattern: str, path: str) -> PathMatch:
	pattern_parts = pattern.split("/")
	path_parts = path.split("/")
	if len(pattern_parts) != len(path_parts):
		return _NO_MATCH
	params: Dict[str, str] = {}
	for expected, actual in zip(pattern_parts, path_parts):
		if expected.startswith(PARAM_SIGIL):
			if not actual:
				return _NO_MATCH
			params[expected[len(PARAM_SIGIL):]] = actual
		elif expected != actual:
			return _NO_MATCH
	return PathMatch(True, params)


def find_route(routes: Iterable[Route], method: str, path: str) -> Optional[RouteMatch]:
	"""Return the first registered route matching ``method`` and ``path``.

	Registration order is the tie-break between overlapping patterns.
	"""
	for route in routes:
		if route.method != method:
			continue
		matched = match_path(route.pattern, path)
		if matched.is_match:
			return RouteMatch(route, matched.params)
	return None


class Router:
	"""Collects routes for one area of the API, in declaration order."""

	def __init__(self, prefix: str = "") -> None:
		self.prefix = prefix.rstrip("/")
		self._routes: List[Route] = []

	@property
	def routes(self) -> Tuple[Route, ...]:
		return tuple(self._routes)

	def add_route(self, method: str, path: str, handler: Handler, *, requires_auth: bool = True) -> None:
		pattern = self.prefix + path if path else self.prefix
		self._routes.append(Route(method.upper(), pattern or "/", handler, requires_auth))

	def route(self, method: str, path: str, *, requires_auth: bool = True) -> Callable[[Handler], Handler]:
		def decorator(handler: Handler) -> Handler:
			self.add_route(method, path, handler, requires_auth=requires_auth)
			return handler
		return decorator

	def get(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
		return self.route("GET", path, **kwargs)

	def post(self, path: str, **kwargs: Any) -> Callable[[Handler], Handler]:
		return self.route("POST", path, **kwargs)


def build_route_table(routers: Sequence[Router]) -> Tuple[Route, ...]:
	table: List[Route] = []
	for router in routers:
		table.extend(router.routes)
	return tuple(table)
