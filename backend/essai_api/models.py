from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Type

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text

from .db import Base


class MemberLookup(Base):
	__tablename__ = "MemberLookup"
	ID = Column(String(64), primary_key=True)
	memberId = Column(String(64), index=True)
	# Wix keeps the login email in "title"; the SQL mirror has both
	title = Column(String(256))
	email = Column(String(256), index=True)
	school = Column(String(128))
	# Comma-joined for teachers, a single class for students
	class_ = Column("class", String(256))
	classno = Column(Integer)
	rolekey = Column(String(32))
	roleid = Column(String(64))
	firstname_e = Column(String(128))
	lastname_e = Column(String(128))
	firstname_c = Column(String(128))
	lastname_c = Column(String(128))
	userCredits = Column(Integer)
	Updated_Date = Column(DateTime)


# ---- Essay submissions: the same chain exists for English ("") and Chinese ("c_") ----

class _UserDataColumns:
	id = Column(Integer, primary_key=True)
	ownerId = Column(String(64), index=True)
	Class = Column(String(64))
	YN = Column(Boolean, default=True, nullable=False)
	UploadTime = Column(DateTime)
	AverageScore = Column(Float)
	FileName = Column(String(256))


class _PdfDataColumns:
	id = Column(Integer, primary_key=True)
	userdata_id = Column(Integer, index=True)


class _ImageDataColumns:
	id = Column(Integer, primary_key=True)
	pdfdata_id = Column(Integer, index=True)


class _ImageDataFullColumns:
	id = Column(Integer, primary_key=True)
	homeworkimages_id = Column(Integer, index=True)
	original_text = Column(Text)
	revised_text = Column(Text)
	title = Column(String(512))
	pdf_url = Column(String(1024))
	score2 = Column(String(64))


class _ReportScoreColumns:
	id = Column(Integer, primary_key=True)
	classno = Column(Integer)
	total_score = Column(Float)


class UserData(_UserDataColumns, Base):
	__tablename__ = "userdata"


class PdfData(_PdfDataColumns, Base):
	__tablename__ = "pdfdata"


class ImageData(_ImageDataColumns, Base):
	__tablename__ = "imagedata"


class ImageDataFull(_ImageDataFullColumns, Base):
	__tablename__ = "imagedata_full"
	relevancy_comment = Column(Text)


class ReportScore(_ReportScoreColumns, Base):
	__tablename__ = "report_score"


class CUserData(_UserDataColumns, Base):
	__tablename__ = "c_userdata"


class CPdfData(_PdfDataColumns, Base):
	__tablename__ = "c_pdfdata"


class CImageData(_ImageDataColumns, Base):
	__tablename__ = "c_imagedata"


class CImageDataFull(_ImageDataFullColumns, Base):
	__tablename__ = "c_imagedata_full"
	comments = Column(Text)


class CReportScore(_ReportScoreColumns, Base):
	__tablename__ = "report_score_c"


@dataclass(frozen=True)
class EssayTables:
	userdata: Type[Base]
	pdfdata: Type[Base]
	imagedata: Type[Base]
	imagedata_full: Type[Base]
	report_score: Type[Base]
	# Column holding the marker's comment on the full essay
	comment_column: str


ESSAY_TABLES: Dict[str, EssayTables] = {
	"en": EssayTables(UserData, PdfData, ImageData, ImageDataFull, ReportScore, "relevancy_comment"),
	"hk": EssayTables(CUserData, CPdfData, CImageData, CImageDataFull, CReportScore, "comments"),
}


# ---- Oral practice ----

class OralUsage(Base):
	__tablename__ = "oralUsage"
	ID = Column(String(64), primary_key=True)
	memberId = Column(String(64), index=True)
	OralQuestionId = Column(String(64), index=True)
	mode = Column(String(32))
	class_ = Column("class", String(64))
	classno = Column(Integer)
	language = Column(String(16))
	school = Column(String(128))
	fullName = Column(String(256))
	email = Column(String(256))
	overallTotalScore = Column(Float)
	createDate = Column(DateTime)
	Updated_Date = Column(DateTime)


class OralReport(Base):
	__tablename__ = "oralReport"
	ID = Column(String(64), primary_key=True)
	memberId = Column(String(64), index=True)
	OralQuestionId = Column(String(64))
	language = Column(String(16))
	report = Column(Text)
	createDate = Column(DateTime)
	Updated_Date = Column(DateTime)


class TeacherAssignment(Base):
	__tablename__ = "teacherAssignment"
	ID = Column(String(64), primary_key=True)
	Owner = Column(String(64), index=True)
	oralQuestionID = Column(String(64))
	display_text = Column(Text)
	photo = Column(String(512))
	description = Column(Text)
	Deadline = Column(DateTime)
	CreatedDate = Column(DateTime)
	UpdatedDate = Column(DateTime)
	Subject = Column(String(64))
	Language = Column(String(16))
	type = Column(Integer)
	Class = Column(String(64))
	EssayTitle = Column(Text)
	EssayInstructions = Column(Text)
	EssayLanguage = Column(String(16))
	TypeOfWriting = Column(String(64))


# ---- Student homework uploads ----

class HomeworkImages(Base):
	__tablename__ = "HomeworkImages"
	id = Column(Integer, primary_key=True)
	studentId = Column(String(64), index=True)
	# teacherAssignment.ID the upload answers
	homeworkId = Column(String(64))
	studentHomeworkId = Column(String(64))
	# Text, "YYYY-MM-DD HH:MM:SS"
	createdAt = Column(String(32))
	attempt = Column(Integer)
	# Column name as spelled in the shared database
	eaasy_language = Column(String(16))
	# Comma-joined image URLs, first one is the cover
	image_array = Column(Text)


# Tables writable through POST /oral/update, keyed by request body field
UPSERT_TABLES: Dict[str, Type[Base]] = {
	"oralUsage": OralUsage,
	"oralReport": OralReport,
	"memberLookup": MemberLookup,
}
