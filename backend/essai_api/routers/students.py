from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from fastapi import HTTPException
from starlette.concurrency import run_in_threadpool

from ..routing import Router
from .common import parse_date_range, upstream_failure

router = Router()

# HomeworkImages.createdAt is stored as text in this layout
CREATED_AT_FORMAT = "%Y-%m-%d %H:%M:%S"

_EMPTY_ESSAY = {
	"originalText": None,
	"revisedText": None,
	"comments": None,
	"title": None,
	"pdfUrl": None,
	"score": None,
}


def _student_query(q):
	student_id = q.get("studentId")
	if not student_id:
		raise HTTPException(status_code=400, detail="Missing required parameter: studentId")
	start, end = parse_date_range(q, inclusive_end_day=True)
	params = {
		"studentId": student_id,
		"startDate": q.get("startDate"),
		"endDate": q.get("endDate"),
	}
	return student_id, start, end, params


def _created_at(value):
	return value.strftime(CREATED_AT_FORMAT) if value is not None else None


def _first_image(image_array: Optional[str]) -> Optional[str]:
	if not image_array:
		return None
	urls = [u.strip() for u in image_array.split(",") if u.strip()]
	return urls[0] if urls else None


def _essay(row: Optional[Dict[str, Any]]) -> Dict[str, Any]:
	if row is None:
		return dict(_EMPTY_ESSAY)
	return {
		"originalText": row.get("original_text"),
		"revisedText": row.get("revised_text"),
		"comments": row.get("comments"),
		"title": row.get("title"),
		"pdfUrl": row.get("pdf_url"),
		"score": row.get("score2"),
	}


@router.get("/student-homeworks")
async def student_homeworks(ctx, next):
	"""A student's homework uploads, newest first, with the assignment each belongs to."""
	student_id, start, end, params = _student_query(ctx.query)
	repo = ctx.services.repository

	try:
		images = await run_in_threadpool(
			repo.list_homework_images, student_id, start=_created_at(start), end=_created_at(end),
		)
		assignments = await run_in_threadpool(repo.find_assignments, {img["homeworkId"] for img in images})
	except Exception as e:
		upstream_failure(ctx, e, "student homeworks")
		return

	data = []
	for img in images:
		row = {**img, "teacherAssignmentId": img["homeworkId"]}
		row.update(assignments.get(img["homeworkId"], {}))
		data.append(row)

	ctx.status = 200
	ctx.response_body = {"success": True, "data": data, "total": len(data), "params": params}


@router.get("/student/essays")
async def student_essays(ctx, next):
	"""A student's essays with the English and Chinese marking attached."""
	student_id, start, end, params = _student_query(ctx.query)
	repo = ctx.services.repository

	try:
		images = await run_in_threadpool(
			repo.list_homework_images, student_id, start=_created_at(start), end=_created_at(end),
		)
		ids = [img["id"] for img in images]
		en, cn = await asyncio.gather(
			run_in_threadpool(repo.essay_texts, "en", ids),
			run_in_threadpool(repo.essay_texts, "hk", ids),
		)
	except Exception as e:
		upstream_failure(ctx, e, "student essays")
		return

	data = [
		{
			"homeworkImagesId": img["id"],
			"studentHomeworkId": img["studentHomeworkId"],
			"homeworkId": img["homeworkId"],
			"createdAt": img["createdAt"],
			"attempt": img["attempt"],
			"essayLanguage": img["eaasy_language"],
			"imageUrl": _first_image(img["image_array"]),
			"en": _essay(en.get(img["id"])),
			"cn": _essay(cn.get(img["id"])),
		}
		for img in images
	]

	ctx.status = 200
	ctx.response_body = {"success": True, "data": data, "total": len(data), "params": params}
