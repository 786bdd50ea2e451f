from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from fastapi import HTTPException

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
LANGS = ("en", "hk")

_DATE_EXAMPLES = {"startDate": "2024-01-01", "endDate": "2024-12-31"}


def parse_date(query: Mapping[str, str], name: str) -> Optional[datetime]:
	raw = (query.get(name) or "").strip()
	if not raw:
		return None
	try:
		value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
	except ValueError:
		example = _DATE_EXAMPLES.get(name, "2024-01-01")
		raise HTTPException(status_code=400, detail=f"Invalid {name} format. Use ISO 8601 format (e.g., {example})")
	if value.tzinfo is not None:
		value = value.astimezone(timezone.utc).replace(tzinfo=None)
	return value


def parse_date_range(query: Mapping[str, str], *, inclusive_end_day: bool = False) -> Tuple[Optional[datetime], Optional[datetime]]:
	start = parse_date(query, "startDate")
	end = parse_date(query, "endDate")
	if end is not None and inclusive_end_day:
		end = end.replace(hour=23, minute=59, second=59, microsecond=999000)
	return start, end


def parse_pagination(query: Mapping[str, str]) -> Tuple[int, int]:
	try:
		page = int(query.get("page") or 1)
		page_size = int(query.get("pageSize") or 10)
	except ValueError:
		page, page_size = 0, 0
	if page < 1 or page_size < 1 or page_size > MAX_PAGE_SIZE:
		raise HTTPException(
			status_code=400,
			detail="Invalid pagination parameters. Page must be >= 1, pageSize must be between 1 and 100",
		)
	return page, page_size


def parse_lang(query: Mapping[str, str]) -> str:
	lang = query.get("lang") or "en"
	if lang not in LANGS:
		raise HTTPException(status_code=400, detail='Invalid lang parameter. Must be "en" or "hk"')
	return lang


def total_pages(total: int, page_size: int) -> int:
	return -(-total // page_size)


def score_summary(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
	"""Totals over per-group ``count`` / ``averageScore`` rows, weighting averages by count."""
	total_essays = sum(int(r["count"]) for r in rows)
	weighted = sum((r["averageScore"] or 0) * int(r["count"]) for r in rows)
	return {
		"totalRecords": len(rows),
		"totalEssays": total_essays,
		"overallAverage": weighted / total_essays if total_essays else 0,
	}


def upstream_failure(ctx, exc: Exception, what: str) -> None:
	logger.error("Error fetching %s: %s", what, exc)
	ctx.status = 500
	ctx.response_body = {"error": "Internal server error", "message": str(exc)}
