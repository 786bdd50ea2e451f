"""
pytest configuration and fixtures.
"""

from datetime import datetime
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from essai_api.auth import Claims, TokenVerifier
from essai_api.main import create_app
from essai_api.models import MemberLookup
from essai_api.repository import Repository
from essai_api.services import Services
from essai_api.settings import Settings

SECRET = "test-secret"

STUDENT_PAYLOAD: Dict[str, Any] = {
	"memberId": "m1",
	"rolekey": "students",
	"school": "S",
	"email": "a@b.com",
	"class": "1A",
}

TEACHER_PAYLOAD: Dict[str, Any] = {
	"memberId": "t1",
	"rolekey": "teachers",
	"school": "S",
	"email": "teacher@school.edu",
	"class": "1A, 1B",
}


@pytest.fixture
def anyio_backend():
	return "asyncio"


@pytest.fixture
def settings() -> Settings:
	return Settings(JWT_SECRET=SECRET, DATABASE_URL="sqlite://", _env_file=None)


@pytest.fixture
def repository() -> Repository:
	repo = Repository.from_url("sqlite://")
	repo.create_schema()
	yield repo
	repo.dispose()


@pytest.fixture
def services(settings, repository) -> Services:
	return Services.from_settings(settings, repository=repository)


@pytest.fixture
def client(settings, services):
	with TestClient(create_app(settings, services)) as c:
		yield c


@pytest.fixture
def verifier(settings) -> TokenVerifier:
	return TokenVerifier.from_settings(settings)


@pytest.fixture
def make_token(verifier):
	def _make(base: Dict[str, Any] = STUDENT_PAYLOAD, **overrides: Any) -> str:
		payload = {**base, **overrides}
		return verifier.issue(Claims.model_validate(payload))
	return _make


@pytest.fixture
def student_token(make_token) -> str:
	return make_token(STUDENT_PAYLOAD)


@pytest.fixture
def teacher_token(make_token) -> str:
	return make_token(TEACHER_PAYLOAD)


def auth(token: str) -> Dict[str, str]:
	return {"Authorization": f"Bearer {token}"}


def add_rows(repository: Repository, *rows) -> None:
	with repository.session() as db:
		db.add_all(rows)
		db.commit()


def member(id_: str, **fields) -> MemberLookup:
	values = {"ID": id_, "memberId": id_, "rolekey": "students", "school": "S"}
	values.update(fields)
	class_name = values.pop("class", None)
	return MemberLookup(class_=class_name, **values)


def dt(value: str) -> datetime:
	return datetime.fromisoformat(value)
