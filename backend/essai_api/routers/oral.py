from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, ValidationError
from starlette.concurrency import run_in_threadpool

from ..routing import Router
from .common import parse_date_range, parse_pagination, total_pages, upstream_failure

logger = logging.getLogger(__name__)

router = Router(prefix="/oral")


class OralUpdateRequest(BaseModel):
	model_config = ConfigDict(extra="ignore")

	oralUsage: Optional[Dict[str, Any]] = None
	oralReport: Optional[Dict[str, Any]] = None
	memberLookup: Optional[Dict[str, Any]] = None


def _teacher_classes(ctx):
	classes = list(ctx.user.classes)
	if not classes:
		raise HTTPException(status_code=400, detail="No classes found for the user")
	return classes


@router.get("/list")
async def oral_list(ctx, next):
	"""Oral practice records for one question or one member, newest first."""
	q = ctx.query
	oral_question_id = q.get("oralQuestionId")
	member_id = q.get("memberId")
	if not oral_question_id and not member_id:
		raise HTTPException(status_code=400, detail="At least one of oralQuestionId or memberId must be provided")
	page, page_size = parse_pagination(q)
	start, end = parse_date_range(q)

	try:
		rows, total = await run_in_threadpool(
			ctx.services.repository.list_oral_usage,
			oral_question_id=oral_question_id,
			member_id=member_id,
			mode=q.get("mode"),
			class_name=q.get("class"),
			language=q.get("language"),
			start=start,
			end=end,
			offset=(page - 1) * page_size,
			limit=page_size,
		)
	except Exception as e:
		upstream_failure(ctx, e, "oral list")
		return

	ctx.status = 200
	ctx.response_body = {
		"success": True,
		"data": rows,
		"total": total,
		"page": page,
		"pageSize": page_size,
		"totalPages": total_pages(total, page_size),
	}


@router.get("/homeworks")
async def oral_homeworks(ctx, next):
	q = ctx.query
	page, page_size = parse_pagination(q)
	start, end = parse_date_range(q)
	assignment_type = None
	if q.get("type"):
		try:
			assignment_type = int(q["type"])
		except ValueError:
			raise HTTPException(status_code=400, detail="Invalid type parameter. Must be an integer")

	repo = ctx.services.repository
	try:
		rows, total = await run_in_threadpool(
			repo.list_oral_homeworks,
			ctx.user.member_id,
			assignment_type=assignment_type,
			language=q.get("language"),
			class_name=q.get("class"),
			start=start,
			end=end,
			offset=(page - 1) * page_size,
			limit=page_size,
		)
	except Exception as e:
		upstream_failure(ctx, e, "teacher oral homeworks")
		return

	question_ids = [row["oralQuestionID"] for row in rows if row.get("oralQuestionID")]
	try:
		stats = await run_in_threadpool(repo.oral_question_stats, question_ids)
	except Exception as e:
		# Homeworks are still useful without scores
		logger.error("Error fetching oral stats: %s", e)
		stats = {}

	empty = {"averageScore": 0, "submissionCount": 0}
	data = [{**row, **stats.get(row.get("oralQuestionID"), empty)} for row in rows]
	ctx.status = 200
	ctx.response_body = {
		"success": True,
		"data": data,
		"total": total,
		"page": page,
		"pageSize": page_size,
		"totalPages": total_pages(total, page_size),
	}


@router.get("/class-summary")
async def oral_class_summary(ctx, next):
	"""Monthly oral score trend per class across the caller's classes."""
	classes = _teacher_classes(ctx)
	start, end = parse_date_range(ctx.query)

	try:
		rows = await run_in_threadpool(
			ctx.services.repository.oral_class_summary,
			ctx.user.school,
			classes,
			language=ctx.query.get("language"),
			start=start,
			end=end,
		)
	except Exception as e:
		upstream_failure(ctx, e, "oral score trends")
		return

	trends = [
		{
			"class": row["class"],
			"month": row["month"],
			"count": int(row["count"]),
			"averageScore": row["averageScore"] or 0,
		}
		for row in rows
	]
	ctx.status = 200
	ctx.response_body = {"success": True, "data": trends}


@router.get("/classno-summary")
async def oral_classno_summary(ctx, next):
	classes = _teacher_classes(ctx)
	class_param = ctx.query.get("class")
	if class_param:
		if class_param not in classes:
			raise HTTPException(status_code=403, detail="Access denied to the specified class")
		classes = [class_param]
	start, end = parse_date_range(ctx.query)

	try:
		rows = await run_in_threadpool(
			ctx.services.repository.oral_classno_summary,
			ctx.user.school,
			classes,
			language=ctx.query.get("language"),
			start=start,
			end=end,
		)
	except Exception as e:
		upstream_failure(ctx, e, "oral classno summary")
		return

	summary = [
		{
			"class": row["class"],
			"month": row["month"],
			"classno": row["classno"],
			"memberId": row["memberId"],
			"fullName": row["fullName"],
			"email": row["email"],
			"count": int(row["count"]),
			"averageScore": row["averageScore"] or 0,
		}
		for row in rows
	]
	ctx.status = 200
	ctx.response_body = {"success": True, "data": summary}


@router.post("/update")
async def oral_update(ctx, next):
	"""Upsert rows of oralUsage / oralReport / MemberLookup, each keyed by ``ID``.

	Each table is reported separately; one table failing does not stop the others.
	"""
	if not isinstance(ctx.body, dict):
		raise HTTPException(status_code=400, detail="Request body must be a JSON object")
	try:
		req = OralUpdateRequest.model_validate(ctx.body)
	except ValidationError:
		raise HTTPException(status_code=400, detail="oralUsage, oralReport and memberLookup must be JSON objects")

	results: Dict[str, Dict[str, Any]] = {}
	for table_key in ("oralUsage", "oralReport", "memberLookup"):
		data = getattr(req, table_key)
		if data is None:
			continue
		record_id = data.get("ID") or data.get("id")
		if not record_id:
			results[table_key] = {"success": False, "message": f"ID is required for {table_key}"}
			continue
		try:
			outcome = await run_in_threadpool(ctx.services.repository.upsert_record, table_key, record_id, data)
		except Exception as e:
			logger.error("Error updating %s: %s", table_key, e)
			results[table_key] = {"success": False, "message": str(e)}
			continue
		results[table_key] = {"success": True, "message": outcome, "id": record_id}

	ctx.status = 200
	ctx.response_body = {"success": True, "results": results}
