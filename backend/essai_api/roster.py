"""
Teacher roster
==============

Resolves the students a teacher is responsible for: the teacher's MemberLookup
record gives a school and a comma-joined class list, and the roster is every
student in that school whose class is in the list.

``RosterCache`` fronts a roster source with an LRU cache whose entries expire a
fixed time after insertion (reads do not extend an entry's life).
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx
from starlette.concurrency import run_in_threadpool

from .errors import RosterLookupError

logger = logging.getLogger(__name__)

Student = Dict[str, Any]


def split_classes(value: Any) -> List[str]:
	if value is None:
		return []
	if isinstance(value, (list, tuple)):
		return [str(c).strip() for c in value if str(c).strip()]
	return [c.strip() for c in str(value).split(",") if c.strip()]


class RosterSource(Protocol):
	async def find_teacher_by_email(self, email: str) -> Optional[Dict[str, Any]]:
		...

	async def find_by_school_and_classes(self, school: str, classes: Sequence[str]) -> List[Student]:
		...


async def lookup_students(source: RosterSource, email: str) -> List[Student]:
	try:
		teacher = await source.find_teacher_by_email(email)
		if teacher is None:
			raise RosterLookupError(f"Teacher with email {email} not found")
		school = teacher.get("school")
		classes = split_classes(teacher.get("class"))
		if not school or not classes:
			raise RosterLookupError("Teacher record missing school or class information")
		return await source.find_by_school_and_classes(school, classes)
	except RosterLookupError as e:
		raise RosterLookupError(f"Failed to find students: {e}") from e
	except Exception as e:
		logger.error("Roster lookup for %s failed: %s", email, e)
		raise RosterLookupError(f"Failed to find students: {e}") from e


class DatabaseRosterSource:
	"""Reads MemberLookup through the repository (blocking calls run in a worker thread)."""

	def __init__(self, repository) -> None:
		self.repository = repository

	async def find_teacher_by_email(self, email: str) -> Optional[Dict[str, Any]]:
		return await run_in_threadpool(self.repository.find_member_by_email, email)

	async def find_by_school_and_classes(self, school: str, classes: Sequence[str]) -> List[Student]:
		return await run_in_threadpool(self.repository.find_students, school, list(classes))


class WixRosterSource:
	"""Queries the MemberLookup collection through the Wix Data REST API."""

	collection_id = "MemberLookup"

	def __init__(
		self,
		api_key: str,
		site_id: str,
		*,
		base_url: str = "https://www.wixapis.com/wix-data/v2",
		client: Optional[httpx.AsyncClient] = None,
	) -> None:
		if not api_key:
			raise ValueError("WIX_API_KEY is not configured")
		self.base_url = base_url.rstrip("/")
		self._headers = {
			"Authorization": api_key,
			"wix-site-id": site_id,
			"Content-Type": "application/json",
		}
		self._client = client or httpx.AsyncClient(timeout=30)

	async def _query(self, filter_: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
		payload = {
			"dataCollectionId": self.collection_id,
			"query": {"filter": filter_, "paging": {"limit": limit}},
		}
		r = await self._client.post(f"{self.base_url}/items/query", headers=self._headers, json=payload)
		r.raise_for_status()
		data = r.json()
		return [item.get("data", {}) for item in data.get("dataItems", [])]

	async def find_teacher_by_email(self, email: str) -> Optional[Dict[str, Any]]:
		items = await self._query({"title": {"$eq": email}}, limit=1)
		return items[0] if items else None

	async def find_by_school_and_classes(self, school: str, classes: Sequence[str]) -> List[Student]:
		return await self._query(
			{
				"rolekey": {"$eq": "students"},
				"school": {"$eq": school},
				"class": {"$hasSome": list(classes)},
			},
			limit=1000,
		)

	async def aclose(self) -> None:
		await self._client.aclose()


@dataclass(frozen=True)
class _Entry:
	value: Tuple[Student, ...]
	inserted_at: float


class RosterCache:
	def __init__(
		self,
		source: RosterSource,
		*,
		max_entries: int = 500,
		ttl_seconds: float = 300.0,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		if max_entries <= 0:
			raise ValueError("max_entries must be positive")
		if ttl_seconds <= 0:
			raise ValueError("ttl_seconds must be positive")
		self.source = source
		self.max_entries = max_entries
		self.ttl_seconds = ttl_seconds
		self._clock = clock
		self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
		self._lock = threading.Lock()

	def __len__(self) -> int:
		with self._lock:
			return len(self._entries)

	def __contains__(self, email: str) -> bool:
		# Read-only: neither refreshes recency nor drops expired entries
		with self._lock:
			entry = self._entries.get(email)
			return entry is not None and self._clock() - entry.inserted_at < self.ttl_seconds

	def _get_live(self, email: str) -> Optional[_Entry]:
		with self._lock:
			entry = self._entries.get(email)
			if entry is None:
				return None
			if self._clock() - entry.inserted_at >= self.ttl_seconds:
				del self._entries[email]
				return None
			self._entries.move_to_end(email)
			return entry

	def _store(self, email: str, students: Sequence[Student]) -> None:
		entry = _Entry(tuple(students), self._clock())
		with self._lock:
			self._entries[email] = entry
			self._entries.move_to_end(email)
			while len(self._entries) > self.max_entries:
				evicted, _ = self._entries.popitem(last=False)
				logger.debug("Roster cache evicted %s", evicted)

	async def get_students(self, email: str) -> List[Student]:
		entry = self._get_live(email)
		if entry is not None:
			logger.debug("Roster cache hit for %s", email)
			return list(entry.value)
		logger.debug("Roster cache miss for %s", email)
		# Concurrent misses for the same teacher may each hit the source
		students = await lookup_students(self.source, email)
		self._store(email, students)
		logger.info("Found %d students for teacher %s", len(students), email)
		return list(students)

	def invalidate(self, email: str) -> bool:
		with self._lock:
			return self._entries.pop(email, None) is not None

	def invalidate_all(self) -> None:
		with self._lock:
			self._entries.clear()
