"""
Request dispatcher
==================

Turns one inbound request (method, path, headers, query, body) into one response:

1. match the path against the route table (404 when nothing matches)
2. enforce the bearer-token gate for routes that require it (401)
3. build a ``RequestContext`` and run the handler against it
4. serialize whatever the handler left in ``ctx.status`` / ``ctx.response_body``

Any exception escaping a handler becomes a generic 500; the error itself is logged
and never sent to the client. Handlers may raise ``HTTPException`` for expected
client errors, which is rendered as ``{"error": detail}``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

from fastapi import HTTPException
from fastapi.encoders import jsonable_encoder

from .auth import Claims, TokenVerifier, extract_bearer
from .routing import Route, find_route

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = "application/json"

MISSING_TOKEN_MESSAGE = "Missing or invalid authorization header"
INVALID_TOKEN_MESSAGE = "Invalid or expired token"
NOT_FOUND_MESSAGE = "Route not found"
INTERNAL_ERROR_MESSAGE = "Internal server error"


@dataclass
class RequestContext:
	method: str
	path: str
	params: Dict[str, str] = field(default_factory=dict)
	query: Dict[str, str] = field(default_factory=dict)
	headers: Dict[str, str] = field(default_factory=dict)
	body: Any = None
	user: Optional[Claims] = None
	services: Any = None
	# Written by handlers
	status: Optional[int] = None
	response_body: Any = None


@dataclass(frozen=True)
class DispatchResponse:
	status: int
	body: str
	headers: Dict[str, str]


async def _noop() -> None:
	return None


def parse_body(raw: Any) -> Any:
	if raw is None:
		return None
	if isinstance(raw, (bytes, bytearray)):
		if not raw:
			return None
		raw = raw.decode("utf-8", errors="replace")
	if isinstance(raw, str):
		if not raw.strip():
			return None
		try:
			return json.loads(raw)
		except ValueError:
			return raw
	return raw


def serialize_body(body: Any) -> str:
	if body is None:
		return ""
	if isinstance(body, str):
		return body
	return json.dumps(jsonable_encoder(body), ensure_ascii=False)


def _error(status: int, message: str) -> DispatchResponse:
	return DispatchResponse(status, json.dumps({"error": message}), {"Content-Type": JSON_MEDIA_TYPE})


class Dispatcher:
	def __init__(
		self,
		routes: Sequence[Route],
		verifier: TokenVerifier,
		services: Any = None,
		*,
		prefix: str = "",
	) -> None:
		self.routes = tuple(routes)
		self.verifier = verifier
		self.services = services
		self.prefix = prefix.rstrip("/")

	def _strip_prefix(self, path: str) -> str:
		if self.prefix and (path == self.prefix or path.startswith(self.prefix + "/")):
			path = path[len(self.prefix):]
		return path or "/"

	async def dispatch(
		self,
		method: str,
		path: str,
		*,
		headers: Optional[Mapping[str, str]] = None,
		query: Optional[Mapping[str, str]] = None,
		body: Any = None,
	) -> DispatchResponse:
		method = method.upper()
		path = self._strip_prefix(path)
		headers = {k.lower(): v for k, v in (headers or {}).items()}
		query = dict(query or {})

		matched = find_route(self.routes, method, path)
		if matched is None:
			logger.info("%s %s -> 404", method, path)
			return _error(404, NOT_FOUND_MESSAGE)

		user: Optional[Claims] = None
		if matched.route.requires_auth:
			token = extract_bearer(headers.get("authorization")) or query.get("jwt")
			if not token:
				logger.info("%s %s -> 401 (no credential)", method, path)
				return _error(401, MISSING_TOKEN_MESSAGE)
			user = self.verifier.verify(token)
			if user is None:
				logger.info("%s %s -> 401 (bad credential)", method, path)
				return _error(401, INVALID_TOKEN_MESSAGE)

		ctx = RequestContext(
			method=method,
			path=path,
			params=matched.params,
			query=query,
			headers=headers,
			body=parse_body(body),
			user=user,
			services=self.services,
		)

		try:
			await matched.route.handler(ctx, _noop)
		except HTTPException as e:
			logger.info("%s %s -> %s", method, path, e.status_code)
			return _error(e.status_code, str(e.detail))
		except Exception:
			logger.exception("Unhandled error in handler for %s %s", method, path)
			return _error(500, INTERNAL_ERROR_MESSAGE)

		status = ctx.status or 200
		try:
			payload = serialize_body(ctx.response_body)
		except (TypeError, ValueError):
			logger.exception("Could not serialize response for %s %s", method, path)
			return _error(500, INTERNAL_ERROR_MESSAGE)
		logger.info("%s %s -> %s", method, path, status)
		return DispatchResponse(status, payload, {"Content-Type": JSON_MEDIA_TYPE})
