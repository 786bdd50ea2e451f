"""
End-to-end tests through the FastAPI app against an in-memory SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from essai_api.models import (
	CImageDataFull,
	HomeworkImages,
	ImageData,
	ImageDataFull,
	MemberLookup,
	OralReport,
	OralUsage,
	PdfData,
	ReportScore,
	TeacherAssignment,
	UserData,
)

from conftest import SECRET, TEACHER_PAYLOAD, add_rows, auth, dt, member


@pytest.fixture
def roster(repository):
	add_rows(
		repository,
		member("t1", rolekey="teachers", email="teacher@school.edu", **{"class": "1A,1B"}),
		member("s1", email="s1@school.edu", classno=1, firstname_e="Amy", **{"class": "1A"}),
		member("s2", email="s2@school.edu", classno=2, firstname_e="Ben", **{"class": "1B"}),
		member("s9", email="s9@school.edu", classno=9, **{"class": "3C"}),
	)


@pytest.fixture
def essays(repository):
	add_rows(
		repository,
		UserData(id=1, ownerId="t1", Class="1a", YN=True, UploadTime=dt("2024-03-05T10:00:00"), AverageScore=80, FileName="a.pdf"),
		UserData(id=2, ownerId="t1", Class="1A", YN=True, UploadTime=dt("2024-03-20T10:00:00"), AverageScore=None, FileName="b.pdf"),
		UserData(id=3, ownerId="t1", Class="1B", YN=True, UploadTime=dt("2024-04-01T08:00:00"), AverageScore=90, FileName="c.pdf"),
		UserData(id=4, ownerId="t1", Class="1B", YN=False, UploadTime=dt("2024-04-02T08:00:00"), AverageScore=10, FileName="gone.pdf"),
		UserData(id=5, ownerId="other", Class="1A", YN=True, UploadTime=dt("2024-03-05T10:00:00"), AverageScore=50, FileName="x.pdf"),
		PdfData(id=10, userdata_id=1),
		ImageData(id=100, pdfdata_id=10),
		ImageDataFull(id=100),
		ReportScore(id=100, classno=1, total_score=70),
	)


@pytest.fixture
def oral_records(repository):
	add_rows(
		repository,
		OralUsage(ID="u1", memberId="s1", OralQuestionId="q1", mode="exam", class_="1A", classno=1, language="en",
			school="S", fullName="Amy Chan", email="s1@school.edu", overallTotalScore=60, createDate=dt("2024-05-01T09:00:00")),
		OralUsage(ID="u2", memberId="s1", OralQuestionId="q1", mode="practice", class_="1A", classno=1, language="en",
			school="S", fullName="Amy Chan", email="s1@school.edu", overallTotalScore=80, createDate=dt("2024-05-03T09:00:00")),
		OralUsage(ID="u3", memberId="s2", OralQuestionId="q2", mode="exam", class_="1B", classno=2, language="zh",
			school="S", fullName="Ben Lee", email="s2@school.edu", overallTotalScore=50, createDate=dt("2024-06-01T09:00:00")),
		OralUsage(ID="u4", memberId="x1", OralQuestionId="q1", mode="exam", class_="1A", classno=5, language="en",
			school="Elsewhere", fullName="Other", email="x1@else.edu", overallTotalScore=10, createDate=dt("2024-05-02T09:00:00")),
		TeacherAssignment(ID="a1", Owner="t1", oralQuestionID="q1", display_text="Describe a trip", type=1,
			Language="en", Class="1A", CreatedDate=dt("2024-04-01T00:00:00")),
		TeacherAssignment(ID="a2", Owner="t1", oralQuestionID="q3", display_text="No answers yet", type=2,
			Language="en", Class="1B", CreatedDate=dt("2024-04-05T00:00:00")),
		TeacherAssignment(ID="a3", Owner="t1", oralQuestionID="q4", display_text="Reading task", type=6,
			Language="en", Class="1A", CreatedDate=dt("2024-04-06T00:00:00")),
		TeacherAssignment(ID="a4", Owner="t2", oralQuestionID="q5", display_text="Not mine", type=1,
			Language="en", Class="1A", CreatedDate=dt("2024-04-07T00:00:00")),
	)


@pytest.fixture
def homework(repository):
	add_rows(
		repository,
		HomeworkImages(id=1, studentId="s1", homeworkId="h1", studentHomeworkId="sh1", createdAt="2024-03-01 09:00:00",
			attempt=1, eaasy_language="en", image_array="https://img.test/1a.jpg, https://img.test/1b.jpg"),
		HomeworkImages(id=2, studentId="s1", homeworkId="h2", studentHomeworkId="sh2", createdAt="2024-03-15 18:30:00",
			attempt=1, eaasy_language="zh", image_array=None),
		HomeworkImages(id=3, studentId="s1", homeworkId="h1", studentHomeworkId="sh3", createdAt="2024-04-01 08:00:00",
			attempt=2, eaasy_language="en", image_array="https://img.test/3.jpg"),
		HomeworkImages(id=4, studentId="s2", homeworkId="h1", studentHomeworkId="sh4", createdAt="2024-03-10 10:00:00",
			attempt=1, eaasy_language="en", image_array="https://img.test/4.jpg"),
		TeacherAssignment(ID="h1", Owner="t1", EssayTitle="My Summer", EssayInstructions="Write 300 words",
			EssayLanguage="en", TypeOfWriting="narrative", Subject="English", CreatedDate=dt("2024-02-20T00:00:00")),
		ImageDataFull(id=50, homeworkimages_id=3, original_text="I goed home.", revised_text="I went home.",
			relevancy_comment="On topic", title="My Summer", pdf_url="https://pdf.test/3.pdf", score2="B+"),
		CImageDataFull(id=60, homeworkimages_id=2, original_text="我回家", comments="通順", score2="A"),
	)


class TestScenarios:
	def test_health_needs_no_token(self, client):
		response = client.get("/api/health")
		assert response.status_code == 200
		body = response.json()
		assert body["status"] == "ok"
		assert body["version"] == "1.0.0"
		assert "timestamp" in body

	def test_users_me(self, client, student_token):
		response = client.get("/api/users/me", headers=auth(student_token))
		assert response.status_code == 200
		body = response.json()
		assert body["success"] is True
		assert body["user"]["memberId"] == "m1"
		assert body["user"]["class"] == "1A"

	def test_users_me_echoes_token_claims(self, client):
		exp = datetime.now(timezone.utc) + timedelta(minutes=5)
		token = jwt.encode({**TEACHER_PAYLOAD, "exp": exp}, SECRET, algorithm="HS256")
		user = client.get("/api/users/me", headers=auth(token)).json()["user"]
		assert user["class"] == "1A, 1B"
		assert user["email"] == "teacher@school.edu"
		assert user["exp"] == int(exp.timestamp())
		assert "iat" not in user

	def test_students_forbidden_for_students(self, client, student_token):
		response = client.get("/api/users/students", headers=auth(student_token))
		assert response.status_code == 403
		assert response.json() == {"error": "Forbidden: Only teachers can access this resource"}

	def test_oral_list_needs_a_filter(self, client, student_token):
		response = client.get("/api/oral/list", headers=auth(student_token))
		assert response.status_code == 400
		assert response.json() == {"error": "At least one of oralQuestionId or memberId must be provided"}


class TestTransport:
	def test_unknown_route(self, client):
		response = client.get("/api/nope")
		assert response.status_code == 404
		assert response.json() == {"error": "Route not found"}
		assert response.headers["content-type"] == "application/json"

	def test_missing_token(self, client):
		response = client.get("/api/users/me")
		assert response.status_code == 401
		assert response.json() == {"error": "Missing or invalid authorization header"}

	def test_invalid_token(self, client):
		response = client.get("/api/users/me", headers=auth("bogus"))
		assert response.status_code == 401
		assert response.json() == {"error": "Invalid or expired token"}

	def test_token_in_query(self, client, student_token):
		response = client.get("/api/users/me", params={"jwt": student_token})
		assert response.status_code == 200

	def test_route_without_prefix(self, client):
		assert client.get("/health").status_code == 200


class TestUsers:
	def test_teacher_roster(self, client, teacher_token, roster):
		response = client.get("/api/users/students", headers=auth(teacher_token))
		assert response.status_code == 200
		body = response.json()
		assert body["success"] is True
		assert [s["memberId"] for s in body["data"]] == ["s1", "s2"]
		assert body["data"][0]["firstname_e"] == "Amy"

	def test_roster_is_cached(self, client, teacher_token, roster, services):
		client.get("/api/users/students", headers=auth(teacher_token))
		assert TEACHER_PAYLOAD["email"] in services.roster

	def test_unknown_teacher(self, client, teacher_token):
		response = client.get("/api/users/students", headers=auth(teacher_token))
		assert response.status_code == 500
		body = response.json()
		assert body["error"] == "Internal server error"
		assert "not found" in body["message"]


class TestSubmissions:
	def test_list(self, client, teacher_token, essays):
		response = client.get("/api/submission/list", headers=auth(teacher_token), params={"pageSize": 2})
		assert response.status_code == 200
		body = response.json()
		assert [row["id"] for row in body["data"]] == [3, 2]
		assert body["pagination"] == {
			"page": 1,
			"pageSize": 2,
			"totalCount": 3,
			"totalPages": 2,
			"hasNext": True,
			"hasPrev": False,
		}

	def test_list_filters(self, client, teacher_token, essays):
		response = client.get(
			"/api/submission/list",
			headers=auth(teacher_token),
			params={"class": "1B", "startDate": "2024-04-01", "endDate": "2024-04-01"},
		)
		body = response.json()
		assert [row["id"] for row in body["data"]] == [3]

	def test_chinese_tables(self, client, teacher_token, essays):
		response = client.get("/api/submission/list", headers=auth(teacher_token), params={"lang": "hk"})
		assert response.status_code == 200
		assert response.json()["data"] == []

	@pytest.mark.parametrize("params, message", [
		({"page": "0"}, "Invalid pagination parameters"),
		({"pageSize": "101"}, "Invalid pagination parameters"),
		({"pageSize": "abc"}, "Invalid pagination parameters"),
		({"lang": "fr"}, "Invalid lang parameter"),
		({"startDate": "yesterday"}, "Invalid startDate format"),
	])
	def test_bad_parameters(self, client, teacher_token, params, message):
		response = client.get("/api/submission/list", headers=auth(teacher_token), params=params)
		assert response.status_code == 400
		assert response.json()["error"].startswith(message)

	def test_class_summary(self, client, teacher_token, essays):
		response = client.get("/api/submission/class-summary", headers=auth(teacher_token))
		assert response.status_code == 200
		body = response.json()
		assert body["data"] == [
			{"class": "1A", "month": "2024-03", "averageScore": 40.0, "count": 2},
			{"class": "1B", "month": "2024-04", "averageScore": 90.0, "count": 1},
		]
		assert body["summary"]["totalRecords"] == 2
		assert body["summary"]["totalEssays"] == 3
		assert body["summary"]["overallAverage"] == pytest.approx(170 / 3)

	def test_classno_summary(self, client, teacher_token, essays, roster):
		response = client.get(
			"/api/submission/classno-summary", headers=auth(teacher_token), params={"class": "1a"},
		)
		assert response.status_code == 200
		body = response.json()
		assert len(body["data"]) == 1
		row = body["data"][0]
		assert row["classno"] == 1
		assert row["month"] == "2024-03"
		assert row["averageScore"] == 70.0
		assert row["student"]["memberId"] == "s1"
		assert body["summary"]["totalStudents"] == 2

	def test_classno_summary_requires_class(self, client, teacher_token):
		response = client.get("/api/submission/classno-summary", headers=auth(teacher_token))
		assert response.status_code == 400
		assert response.json() == {"error": "Missing required parameter: class"}


class TestOral:
	def test_list_by_member(self, client, student_token, oral_records):
		response = client.get("/api/oral/list", headers=auth(student_token), params={"memberId": "s1"})
		assert response.status_code == 200
		body = response.json()
		assert [row["ID"] for row in body["data"]] == ["u2", "u1"]
		assert body["total"] == 2
		assert body["totalPages"] == 1
		assert body["data"][0]["createDate"] == "2024-05-03T09:00:00"

	def test_question_takes_precedence(self, client, student_token, oral_records):
		response = client.get(
			"/api/oral/list",
			headers=auth(student_token),
			params={"oralQuestionId": "q2", "memberId": "s1"},
		)
		assert [row["ID"] for row in response.json()["data"]] == ["u3"]

	def test_list_filters(self, client, student_token, oral_records):
		response = client.get(
			"/api/oral/list",
			headers=auth(student_token),
			params={"oralQuestionId": "q1", "mode": "exam", "class": "1A"},
		)
		assert sorted(row["ID"] for row in response.json()["data"]) == ["u1", "u4"]

	def test_students_alias(self, client, student_token, oral_records):
		response = client.get("/api/students/oral", headers=auth(student_token), params={"memberId": "s2"})
		assert response.status_code == 200
		assert [row["ID"] for row in response.json()["data"]] == ["u3"]

	def test_homeworks(self, client, teacher_token, oral_records):
		response = client.get("/api/oral/homeworks", headers=auth(teacher_token))
		assert response.status_code == 200
		body = response.json()
		assert [row["ID"] for row in body["data"]] == ["a2", "a1"]
		no_answers, trip = body["data"]
		assert no_answers["averageScore"] == 0
		assert no_answers["submissionCount"] == 0
		assert trip["submissionCount"] == 3
		assert trip["averageScore"] == pytest.approx(50.0)
		assert body["total"] == 2

	def test_homeworks_by_type(self, client, teacher_token, oral_records):
		response = client.get("/api/oral/homeworks", headers=auth(teacher_token), params={"type": "6"})
		assert [row["ID"] for row in response.json()["data"]] == ["a3"]

	def test_homeworks_bad_type(self, client, teacher_token):
		response = client.get("/api/oral/homeworks", headers=auth(teacher_token), params={"type": "six"})
		assert response.status_code == 400

	def test_class_summary(self, client, teacher_token, oral_records):
		response = client.get("/api/oral/class-summary", headers=auth(teacher_token))
		assert response.status_code == 200
		assert response.json()["data"] == [
			{"class": "1A", "month": "2024-05", "count": 2, "averageScore": 70.0},
			{"class": "1B", "month": "2024-06", "count": 1, "averageScore": 50.0},
		]

	def test_class_summary_language(self, client, teacher_token, oral_records):
		response = client.get("/api/oral/class-summary", headers=auth(teacher_token), params={"language": "zh"})
		assert [row["class"] for row in response.json()["data"]] == ["1B"]

	def test_class_summary_needs_classes(self, client, make_token):
		token = make_token(TEACHER_PAYLOAD, **{"class": ""})
		response = client.get("/api/oral/class-summary", headers=auth(token))
		assert response.status_code == 400
		assert response.json() == {"error": "No classes found for the user"}

	def test_classno_summary(self, client, teacher_token, oral_records):
		response = client.get(
			"/api/oral/classno-summary", headers=auth(teacher_token), params={"class": "1B"},
		)
		assert response.status_code == 200
		assert response.json()["data"] == [{
			"class": "1B",
			"month": "2024-06",
			"classno": 2,
			"memberId": "s2",
			"fullName": "Ben Lee",
			"email": "s2@school.edu",
			"count": 1,
			"averageScore": 50.0,
		}]

	def test_classno_summary_foreign_class(self, client, teacher_token):
		response = client.get(
			"/api/oral/classno-summary", headers=auth(teacher_token), params={"class": "3C"},
		)
		assert response.status_code == 403
		assert response.json() == {"error": "Access denied to the specified class"}


class TestOralUpdate:
	def test_create_then_update(self, client, teacher_token, repository):
		payload = {
			"oralUsage": {"ID": "u9", "memberId": "s1", "overallTotalScore": 75, "createDate": "2024-07-01T10:00:00Z"},
			"oralReport": {"ID": "r9", "memberId": "s1", "report": "Good pronunciation"},
		}
		response = client.post("/api/oral/update", headers=auth(teacher_token), json=payload)
		assert response.status_code == 200
		assert response.json() == {
			"success": True,
			"results": {
				"oralUsage": {"success": True, "message": "Created", "id": "u9"},
				"oralReport": {"success": True, "message": "Created", "id": "r9"},
			},
		}

		response = client.post(
			"/api/oral/update",
			headers=auth(teacher_token),
			json={"oralUsage": {"ID": "u9", "overallTotalScore": 85}},
		)
		assert response.json()["results"]["oralUsage"]["message"] == "Updated"

		with repository.session() as db:
			row = db.get(OralUsage, "u9")
			assert row.overallTotalScore == 85
			assert row.memberId == "s1"
			assert row.Updated_Date is not None
			assert db.get(OralReport, "r9").report == "Good pronunciation"

	def test_member_lookup(self, client, teacher_token, repository):
		response = client.post(
			"/api/oral/update",
			headers=auth(teacher_token),
			json={"memberLookup": {"ID": "s7", "memberId": "s7", "class": "2B", "classno": 7}},
		)
		assert response.json()["results"]["memberLookup"]["success"] is True
		with repository.session() as db:
			row = db.get(MemberLookup, "s7")
			assert row.class_ == "2B"
			assert row.classno == 7

	def test_partial_failures(self, client, teacher_token):
		response = client.post(
			"/api/oral/update",
			headers=auth(teacher_token),
			json={
				"oralUsage": {"memberId": "s1"},
				"oralReport": {"ID": "r1", "nonsense": 1},
				"memberLookup": {"ID": "s8", "email": "s8@school.edu"},
			},
		)
		assert response.status_code == 200
		results = response.json()["results"]
		assert results["oralUsage"] == {"success": False, "message": "ID is required for oralUsage"}
		assert results["oralReport"]["success"] is False
		assert "nonsense" in results["oralReport"]["message"]
		assert results["memberLookup"]["success"] is True

	def test_body_must_be_object(self, client, teacher_token):
		response = client.post("/api/oral/update", headers=auth(teacher_token), json=[1, 2])
		assert response.status_code == 400
		assert response.json() == {"error": "Request body must be a JSON object"}

	def test_get_is_not_routed(self, client, teacher_token):
		response = client.get("/api/oral/update", headers=auth(teacher_token))
		assert response.status_code == 404


class TestStudentHomework:
	@pytest.mark.parametrize("path", ["/api/student-homeworks", "/api/student/essays"])
	def test_student_id_required(self, client, student_token, path):
		response = client.get(path, headers=auth(student_token))
		assert response.status_code == 400
		assert response.json() == {"error": "Missing required parameter: studentId"}

	@pytest.mark.parametrize("path", ["/api/student-homeworks", "/api/student/essays"])
	def test_bad_date(self, client, student_token, path):
		response = client.get(path, headers=auth(student_token), params={"studentId": "s1", "endDate": "soon"})
		assert response.status_code == 400
		assert response.json()["error"].startswith("Invalid endDate format")

	def test_homeworks_newest_first(self, client, student_token, homework):
		response = client.get("/api/student-homeworks", headers=auth(student_token), params={"studentId": "s1"})
		assert response.status_code == 200
		body = response.json()
		assert body["success"] is True
		assert [row["id"] for row in body["data"]] == [3, 2, 1]
		assert body["total"] == 3
		assert body["params"] == {"studentId": "s1", "startDate": None, "endDate": None}

	def test_homeworks_carry_their_assignment(self, client, student_token, homework):
		response = client.get("/api/student-homeworks", headers=auth(student_token), params={"studentId": "s1"})
		newest, orphan, _ = response.json()["data"]
		assert newest["teacherAssignmentId"] == "h1"
		assert newest["EssayTitle"] == "My Summer"
		assert newest["TypeOfWriting"] == "narrative"
		assert newest["attempt"] == 2
		assert orphan["teacherAssignmentId"] == "h2"
		assert "EssayTitle" not in orphan

	def test_homeworks_date_range(self, client, student_token, homework):
		params = {"studentId": "s1", "startDate": "2024-03-01", "endDate": "2024-03-15"}
		response = client.get("/api/student-homeworks", headers=auth(student_token), params=params)
		body = response.json()
		# the end date covers the whole day
		assert [row["id"] for row in body["data"]] == [2, 1]
		assert body["params"] == params

	def test_unknown_student(self, client, student_token, homework):
		response = client.get("/api/student-homeworks", headers=auth(student_token), params={"studentId": "nobody"})
		assert response.status_code == 200
		assert response.json() == {
			"success": True,
			"data": [],
			"total": 0,
			"params": {"studentId": "nobody", "startDate": None, "endDate": None},
		}

	def test_essays(self, client, student_token, homework):
		response = client.get("/api/student/essays", headers=auth(student_token), params={"studentId": "s1"})
		assert response.status_code == 200
		body = response.json()
		assert body["total"] == 3
		latest, chinese, first = body["data"]

		assert latest["homeworkImagesId"] == 3
		assert latest["studentHomeworkId"] == "sh3"
		assert latest["homeworkId"] == "h1"
		assert latest["createdAt"] == "2024-04-01 08:00:00"
		assert latest["essayLanguage"] == "en"
		assert latest["imageUrl"] == "https://img.test/3.jpg"
		assert latest["en"] == {
			"originalText": "I goed home.",
			"revisedText": "I went home.",
			"comments": "On topic",
			"title": "My Summer",
			"pdfUrl": "https://pdf.test/3.pdf",
			"score": "B+",
		}
		assert latest["cn"]["originalText"] is None

		assert chinese["imageUrl"] is None
		assert chinese["cn"]["comments"] == "通順"
		assert chinese["cn"]["score"] == "A"
		assert chinese["en"] == {
			"originalText": None,
			"revisedText": None,
			"comments": None,
			"title": None,
			"pdfUrl": None,
			"score": None,
		}

		assert first["imageUrl"] == "https://img.test/1a.jpg"

	def test_essays_for_unknown_student(self, client, student_token, homework):
		response = client.get("/api/student/essays", headers=auth(student_token), params={"studentId": "nobody"})
		assert response.json()["data"] == []

	@pytest.mark.parametrize("path", ["/api/student-homeworks", "/api/student/essays"])
	def test_database_failure(self, client, student_token, services, monkeypatch, path):
		def broken(*args, **kwargs):
			raise RuntimeError("database is down")

		monkeypatch.setattr(services.repository, "list_homework_images", broken)
		response = client.get(path, headers=auth(student_token), params={"studentId": "s1"})
		assert response.status_code == 500
		assert response.json() == {"error": "Internal server error", "message": "database is down"}
