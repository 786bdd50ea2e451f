"""
Essay submission endpoints
==========================

All three read the calling teacher's own uploads (``ownerId = memberId``, active
rows only). ``lang=en`` reads the English tables and ``lang=hk`` the Chinese ``c_*``
tables.

- GET /submission/list: paginated uploads, newest first
- GET /submission/class-summary: per class and month upload count and average
  score (a missing score counts as 0)
- GET /submission/classno-summary: per class number and month average of the
  report total score within one class, joined with the roster student holding
  that class number
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import HTTPException
from starlette.concurrency import run_in_threadpool

from ..routing import Router
from .common import parse_date_range, parse_lang, parse_pagination, score_summary, total_pages, upstream_failure

logger = logging.getLogger(__name__)

router = Router(prefix="/submission")


@router.get("/list")
async def submission_list(ctx, next):
	page, page_size = parse_pagination(ctx.query)
	lang = parse_lang(ctx.query)
	start, end = parse_date_range(ctx.query, inclusive_end_day=True)
	class_name = ctx.query.get("class") or None
	logger.debug("submission list for %s: lang=%s class=%s page=%s", ctx.user.member_id, lang, class_name, page)

	try:
		rows, total = await run_in_threadpool(
			ctx.services.repository.list_submissions,
			lang,
			ctx.user.member_id,
			class_name=class_name,
			start=start,
			end=end,
			offset=(page - 1) * page_size,
			limit=page_size,
		)
	except Exception as e:
		upstream_failure(ctx, e, "submission list")
		return

	ctx.status = 200
	ctx.response_body = {
		"success": True,
		"data": rows,
		"pagination": {
			"page": page,
			"pageSize": page_size,
			"totalCount": total,
			"totalPages": total_pages(total, page_size),
			"hasNext": page * page_size < total,
			"hasPrev": page > 1,
		},
	}


@router.get("/class-summary")
async def class_summary(ctx, next):
	lang = parse_lang(ctx.query)
	start, end = parse_date_range(ctx.query, inclusive_end_day=True)

	try:
		rows = await run_in_threadpool(
			ctx.services.repository.submission_class_summary,
			lang,
			ctx.user.member_id,
			start=start,
			end=end,
		)
	except Exception as e:
		upstream_failure(ctx, e, "class monthly average scores")
		return

	results = [
		{
			"class": row["class"] or "unknown",
			"month": row["month"],
			"averageScore": row["averageScore"] or 0,
			"count": int(row["count"]),
		}
		for row in rows
	]
	ctx.status = 200
	ctx.response_body = {"success": True, "data": results, "summary": score_summary(results)}


@router.get("/classno-summary")
async def classno_summary(ctx, next):
	class_param = ctx.query.get("class")
	if not class_param:
		raise HTTPException(status_code=400, detail="Missing required parameter: class")
	lang = parse_lang(ctx.query)
	start, end = parse_date_range(ctx.query, inclusive_end_day=True)
	class_upper = class_param.upper()

	try:
		students, rows = await asyncio.gather(
			ctx.services.roster.get_students(ctx.user.email),
			run_in_threadpool(
				ctx.services.repository.submission_classno_summary,
				lang,
				ctx.user.member_id,
				class_upper,
				start=start,
				end=end,
			),
		)
	except Exception as e:
		upstream_failure(ctx, e, "class monthly trends by classno")
		return

	by_class_and_classno = {}
	for student in students:
		key = f"{str(student.get('class') or '').upper()}_{student.get('classno')}"
		by_class_and_classno[key] = student

	results = []
	for row in rows:
		classno = row["classno"] or 0
		results.append({
			"classno": classno,
			"month": row["month"],
			"averageScore": row["averageScore"] or 0,
			"count": int(row["count"]),
			"student": by_class_and_classno.get(f"{class_upper}_{classno}"),
		})

	summary = score_summary(results)
	summary["totalStudents"] = len(students)
	ctx.status = 200
	ctx.response_body = {"success": True, "data": results, "summary": summary}
