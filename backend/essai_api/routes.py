from __future__ import annotations

from typing import Tuple

from .routers import health, oral, students, submissions, users
from .routing import Route, Router, build_route_table

# Older clients still call the oral list under /students
students_router = Router(prefix="/students")
students_router.add_route("GET", "/oral", oral.oral_list)


def build_routes() -> Tuple[Route, ...]:
	"""Route table in match order; built once at startup and never modified."""
	return build_route_table([
		health.router,
		users.router,
		submissions.router,
		students_router,
		students.router,
		oral.router,
	])
