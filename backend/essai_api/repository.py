"""
Data access for the read endpoints and the oral upsert.

Every method is blocking (plain SQLAlchemy sessions); async callers push them to a
worker thread. Rows come back as plain dicts keyed by database column name.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import DateTime, Float, Integer, String, cast, func, insert, literal_column, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import FunctionElement

from .db import Base, make_engine, make_session_factory
from .errors import UnknownColumnError
from .models import ESSAY_TABLES, UPSERT_TABLES, HomeworkImages, MemberLookup, OralUsage, TeacherAssignment

STUDENT_COLUMNS = (
	"memberId", "firstname_e", "lastname_e", "firstname_c", "lastname_c",
	"school", "class", "classno", "rolekey", "roleid",
)

ASSIGNMENT_COLUMNS = (
	"ID", "oralQuestionID", "display_text", "photo", "description", "Deadline",
	"CreatedDate", "UpdatedDate", "Subject", "Language", "type", "Class",
)

# Assignment fields merged into a student's homework uploads
HOMEWORK_ASSIGNMENT_COLUMNS = (
	"ID", "EssayTitle", "EssayInstructions", "EssayLanguage", "TypeOfWriting",
	"Subject", "Deadline", "CreatedDate", "UpdatedDate",
)

# Assignment types that are not oral homework
EXCLUDED_ASSIGNMENT_TYPES = (6, 7)


class year_month(FunctionElement):
	"""``YYYY-MM`` string of a datetime column, rendered per dialect."""

	type = String()
	name = "year_month"
	inherit_cache = True


@compiles(year_month)
def _year_month_default(element, compiler, **kw):
	return "strftime('%%Y-%%m', %s)" % compiler.process(element.clauses, **kw)


@compiles(year_month, "mssql")
def _year_month_mssql(element, compiler, **kw):
	return "FORMAT(%s, 'yyyy-MM')" % compiler.process(element.clauses, **kw)


@compiles(year_month, "postgresql")
def _year_month_postgresql(element, compiler, **kw):
	return "to_char(%s, 'YYYY-MM')" % compiler.process(element.clauses, **kw)


@compiles(year_month, "mysql")
def _year_month_mysql(element, compiler, **kw):
	return "DATE_FORMAT(%s, '%%%%Y-%%%%m')" % compiler.process(element.clauses, **kw)


def _date_range(column, start: Optional[datetime], end: Optional[datetime]) -> List[Any]:
	conds = []
	if start is not None:
		conds.append(column >= start)
	if end is not None:
		conds.append(column <= end)
	return conds


def _rows(result) -> List[Dict[str, Any]]:
	return [dict(row) for row in result.mappings().all()]


class Repository:
	def __init__(self, engine: Engine) -> None:
		self.engine = engine
		self._session_factory = make_session_factory(engine)

	@classmethod
	def from_url(cls, database_url: str) -> "Repository":
		return cls(make_engine(database_url))

	def session(self) -> Session:
		return self._session_factory()

	def create_schema(self) -> None:
		Base.metadata.create_all(bind=self.engine)

	def dispose(self) -> None:
		self.engine.dispose()

	def _count(self, db, table, conds: Sequence[Any]) -> int:
		stmt = select(func.count()).select_from(table).where(*conds)
		return int(db.execute(stmt).scalar() or 0)

	# ---- Members / roster ----

	def find_member_by_email(self, email: str) -> Optional[Dict[str, Any]]:
		t = MemberLookup.__table__
		with self._session_factory() as db:
			row = db.execute(select(t).where(t.c.email == email).limit(1)).mappings().first()
		return dict(row) if row is not None else None

	def find_students(self, school: str, classes: Sequence[str]) -> List[Dict[str, Any]]:
		t = MemberLookup.__table__
		stmt = (
			select(*[t.c[name] for name in STUDENT_COLUMNS])
			.where(t.c.rolekey == "students", t.c.school == school, t.c["class"].in_(list(classes)))
			.order_by(t.c["class"], t.c.classno)
		)
		with self._session_factory() as db:
			return _rows(db.execute(stmt))

	# ---- Essay submissions ----

	def list_submissions(
		self,
		lang: str,
		owner_id: str,
		*,
		class_name: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		offset: int = 0,
		limit: int = 10,
	) -> Tuple[List[Dict[str, Any]], int]:
		t = ESSAY_TABLES[lang].userdata.__table__
		conds = [t.c.ownerId == owner_id, t.c.YN == True]  # noqa: E712
		if class_name:
			conds.append(t.c.Class == class_name)
		conds += _date_range(t.c.UploadTime, start, end)
		stmt = select(t).where(*conds).order_by(t.c.id.desc()).offset(offset).limit(limit)
		with self._session_factory() as db:
			rows = _rows(db.execute(stmt))
			total = self._count(db, t, conds)
		return rows, total

	def submission_class_summary(
		self,
		lang: str,
		owner_id: str,
		*,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
	) -> List[Dict[str, Any]]:
		t = ESSAY_TABLES[lang].userdata.__table__
		class_expr = func.upper(func.coalesce(t.c.Class, literal_column("'unknown'")))
		month_expr = year_month(t.c.UploadTime)
		stmt = (
			select(
				class_expr.label("class"),
				month_expr.label("month"),
				func.count().label("count"),
				func.avg(cast(func.coalesce(t.c.AverageScore, literal_column("0")), Float)).label("averageScore"),
			)
			.where(
				t.c.ownerId == owner_id,
				t.c.YN == True,  # noqa: E712
				*_date_range(t.c.UploadTime, start, end),
			)
			.group_by(class_expr, month_expr)
			.order_by(class_expr, month_expr)
		)
		with self._session_factory() as db:
			return _rows(db.execute(stmt))

	def submission_classno_summary(
		self,
		lang: str,
		owner_id: str,
		class_upper: str,
		*,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
	) -> List[Dict[str, Any]]:
		tables = ESSAY_TABLES[lang]
		u = tables.userdata.__table__
		a = tables.pdfdata.__table__
		d = tables.imagedata.__table__
		b = tables.imagedata_full.__table__
		r = tables.report_score.__table__
		classno_expr = func.coalesce(r.c.classno, literal_column("0", Integer))
		month_expr = year_month(u.c.UploadTime)
		joined = (
			u.join(a, u.c.id == a.c.userdata_id)
			.join(d, a.c.id == d.c.pdfdata_id)
			.join(b, d.c.id == b.c.id)
			.join(r, b.c.id == r.c.id)
		)
		stmt = (
			select(
				classno_expr.label("classno"),
				month_expr.label("month"),
				func.count().label("count"),
				func.avg(cast(r.c.total_score, Float)).label("averageScore"),
			)
			.select_from(joined)
			.where(
				u.c.ownerId == owner_id,
				u.c.YN == True,  # noqa: E712
				func.upper(u.c.Class) == class_upper,
				r.c.total_score.is_not(None),
				*_date_range(u.c.UploadTime, start, end),
			)
			.group_by(classno_expr, month_expr)
			.order_by(classno_expr, month_expr)
		)
		with self._session_factory() as db:
			return _rows(db.execute(stmt))

	# ---- Student homework ----

	def list_homework_images(
		self,
		student_id: str,
		*,
		start: Optional[str] = None,
		end: Optional[str] = None,
	) -> List[Dict[str, Any]]:
		"""A student's uploads, newest first.

		``createdAt`` is stored as text, so ``start``/``end`` are compared as
		``YYYY-MM-DD HH:MM:SS`` strings.
		"""
		t = HomeworkImages.__table__
		conds = [t.c.studentId == student_id]
		if start is not None:
			conds.append(t.c.createdAt >= start)
		if end is not None:
			conds.append(t.c.createdAt <= end)
		stmt = select(t).where(*conds).order_by(t.c.id.desc())
		with self._session_factory() as db:
			return _rows(db.execute(stmt))

	def find_assignments(self, assignment_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
		ids = [a for a in assignment_ids if a]
		if not ids:
			return {}
		t = TeacherAssignment.__table__
		stmt = select(*[t.c[name] for name in HOMEWORK_ASSIGNMENT_COLUMNS]).where(t.c.ID.in_(ids))
		with self._session_factory() as db:
			return {row["ID"]: row for row in _rows(db.execute(stmt))}

	def essay_texts(self, lang: str, homework_image_ids: Iterable[int]) -> Dict[int, Dict[str, Any]]:
		"""Full essay rows of one language keyed by ``homeworkimages_id``."""
		ids = list(homework_image_ids)
		if not ids:
			return {}
		tables = ESSAY_TABLES[lang]
		t = tables.imagedata_full.__table__
		stmt = select(
			t.c.homeworkimages_id,
			t.c.original_text,
			t.c.revised_text,
			t.c[tables.comment_column].label("comments"),
			t.c.title,
			t.c.pdf_url,
			t.c.score2,
		).where(t.c.homeworkimages_id.in_(ids))
		with self._session_factory() as db:
			return {row["homeworkimages_id"]: row for row in _rows(db.execute(stmt))}

	# ---- Oral practice ----

	def list_oral_usage(
		self,
		*,
		oral_question_id: Optional[str] = None,
		member_id: Optional[str] = None,
		mode: Optional[str] = None,
		class_name: Optional[str] = None,
		language: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		offset: int = 0,
		limit: int = 10,
	) -> Tuple[List[Dict[str, Any]], int]:
		t = OralUsage.__table__
		conds = []
		if oral_question_id:
			conds.append(t.c.OralQuestionId == oral_question_id)
		elif member_id:
			conds.append(t.c.memberId == member_id)
		if mode:
			conds.append(t.c.mode == mode)
		if class_name:
			conds.append(t.c["class"] == class_name)
		if language:
			conds.append(t.c.language == language)
		conds += _date_range(t.c.createDate, start, end)
		stmt = select(t).where(*conds).order_by(t.c.createDate.desc()).offset(offset).limit(limit)
		with self._session_factory() as db:
			rows = _rows(db.execute(stmt))
			total = self._count(db, t, conds)
		return rows, total

	def list_oral_homeworks(
		self,
		owner_id: str,
		*,
		assignment_type: Optional[int] = None,
		language: Optional[str] = None,
		class_name: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
		offset: int = 0,
		limit: int = 10,
	) -> Tuple[List[Dict[str, Any]], int]:
		t = TeacherAssignment.__table__
		conds = [t.c.Owner == owner_id, t.c.oralQuestionID.is_not(None)]
		if assignment_type is not None:
			conds.append(t.c.type == assignment_type)
		else:
			conds.append(t.c.type.not_in(EXCLUDED_ASSIGNMENT_TYPES))
		if language:
			conds.append(t.c.Language == language)
		if class_name:
			conds.append(t.c.Class == class_name)
		conds += _date_range(t.c.CreatedDate, start, end)
		stmt = (
			select(*[t.c[name] for name in ASSIGNMENT_COLUMNS])
			.where(*conds)
			.order_by(t.c.CreatedDate.desc())
			.offset(offset)
			.limit(limit)
		)
		with self._session_factory() as db:
			rows = _rows(db.execute(stmt))
			total = self._count(db, t, conds)
		return rows, total

	def oral_question_stats(self, question_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
		ids = [q for q in question_ids if q]
		stats: Dict[str, Dict[str, Any]] = {q: {"averageScore": 0, "submissionCount": 0} for q in ids}
		if not ids:
			return stats
		t = OralUsage.__table__
		stmt = (
			select(
				t.c.OralQuestionId,
				func.avg(cast(t.c.overallTotalScore, Float)).label("averageScore"),
				func.count().label("submissionCount"),
			)
			.where(t.c.OralQuestionId.in_(ids))
			.group_by(t.c.OralQuestionId)
		)
		with self._session_factory() as db:
			for row in db.execute(stmt).mappings():
				stats[row["OralQuestionId"]] = {
					"averageScore": row["averageScore"] or 0,
					"submissionCount": int(row["submissionCount"]),
				}
		return stats

	def oral_class_summary(
		self,
		school: Optional[str],
		classes: Sequence[str],
		*,
		language: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
	) -> List[Dict[str, Any]]:
		t = OralUsage.__table__
		month_expr = year_month(t.c.createDate)
		stmt = (
			select(
				t.c["class"].label("class"),
				month_expr.label("month"),
				func.count().label("count"),
				func.avg(t.c.overallTotalScore).label("averageScore"),
			)
			.where(*self._oral_scope(school, classes, language, start, end))
			.group_by(t.c["class"], month_expr)
			.order_by(month_expr, t.c["class"])
		)
		with self._session_factory() as db:
			return _rows(db.execute(stmt))

	def oral_classno_summary(
		self,
		school: Optional[str],
		classes: Sequence[str],
		*,
		language: Optional[str] = None,
		start: Optional[datetime] = None,
		end: Optional[datetime] = None,
	) -> List[Dict[str, Any]]:
		t = OralUsage.__table__
		month_expr = year_month(t.c.createDate)
		keys = (t.c["class"], month_expr, t.c.classno, t.c.memberId, t.c.fullName, t.c.email)
		stmt = (
			select(
				t.c["class"].label("class"),
				month_expr.label("month"),
				t.c.classno,
				t.c.memberId,
				t.c.fullName,
				t.c.email,
				func.count().label("count"),
				func.avg(t.c.overallTotalScore).label("averageScore"),
			)
			.where(*self._oral_scope(school, classes, language, start, end))
			.group_by(*keys)
			.order_by(t.c["class"], month_expr, t.c.classno, t.c.memberId)
		)
		with self._session_factory() as db:
			return _rows(db.execute(stmt))

	def _oral_scope(self, school, classes, language, start, end) -> List[Any]:
		t = OralUsage.__table__
		conds = []
		if school:
			conds.append(t.c.school == school)
		if classes:
			conds.append(t.c["class"].in_(list(classes)))
		if language:
			conds.append(t.c.language == language)
		conds += _date_range(t.c.createDate, start, end)
		return conds

	# ---- Upsert ----

	def upsert_record(self, table_key: str, record_id: str, data: Dict[str, Any]) -> str:
		"""Insert or update one row by ``ID``; returns ``"Created"`` or ``"Updated"``."""
		t = UPSERT_TABLES[table_key].__table__
		values = {k: v for k, v in data.items() if k not in ("ID", "id")}
		unknown = sorted(set(values) - set(t.c.keys()))
		if unknown:
			raise UnknownColumnError(f"Unknown column(s) for {table_key}: {', '.join(unknown)}")
		bound = {t.c[k]: _coerce(t.c[k], v) for k, v in values.items()}
		record_id = str(record_id)
		with self._session_factory() as db:
			exists = db.execute(select(t.c.ID).where(t.c.ID == record_id)).first()
			if exists is None:
				db.execute(insert(t).values({t.c.ID: record_id, **bound}))
				outcome = "Created"
			else:
				bound[t.c.Updated_Date] = datetime.utcnow()
				db.execute(update(t).where(t.c.ID == record_id).values(bound))
				outcome = "Updated"
			db.commit()
		return outcome


def _coerce(column, value: Any) -> Any:
	if isinstance(column.type, DateTime) and isinstance(value, str):
		return datetime.fromisoformat(value.replace("Z", "+00:00"))
	return value
