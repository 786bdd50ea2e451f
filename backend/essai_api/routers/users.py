from __future__ import annotations

from fastapi import HTTPException

from ..errors import RosterLookupError
from ..routing import Router
from .common import upstream_failure

router = Router(prefix="/users")


@router.get("/me")
async def me(ctx, next):
	ctx.status = 200
	ctx.response_body = {"success": True, "user": ctx.user.to_payload()}


@router.get("/students")
async def my_students(ctx, next):
	"""Roster of the calling teacher, served from the roster cache."""
	if not ctx.user.is_teacher:
		# Role check belongs to this handler, not the dispatcher's token gate
		raise HTTPException(status_code=403, detail="Forbidden: Only teachers can access this resource")
	try:
		students = await ctx.services.roster.get_students(ctx.user.email)
	except RosterLookupError as e:
		upstream_failure(ctx, e, "teacher roster")
		return
	ctx.status = 200
	ctx.response_body = {"success": True, "data": students}
