from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Literal, Optional, Tuple

from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .settings import Settings

logger = logging.getLogger(__name__)

BEARER_SCHEME = "Bearer"


class Claims(BaseModel):
	"""Identity carried by a verified token.

	Wire names are kept as issued by the member site (``memberId``, ``rolekey``,
	``class``). ``class`` travels as a comma-joined string; here it is split once into
	an ordered tuple of class names, and the string itself is kept so the payload
	goes back out exactly as it came in.
	"""

	model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

	member_id: str = Field(alias="memberId", min_length=1)
	rolekey: Literal["teachers", "students"]
	school: str = ""
	email: str = ""
	classes: Tuple[str, ...] = Field(default=(), alias="class")
	class_raw: Optional[str] = None
	iat: Optional[int] = None
	exp: Optional[int] = None

	@model_validator(mode="before")
	@classmethod
	def _keep_wire_class(cls, data: Any):
		if isinstance(data, dict) and "class_raw" not in data:
			raw = data.get("class", data.get("classes"))
			if isinstance(raw, str):
				data = {**data, "class_raw": raw}
		return data

	@field_validator("classes", mode="before")
	@classmethod
	def _split_classes(cls, value: Any):
		if value is None:
			return ()
		if isinstance(value, str):
			return tuple(c.strip() for c in value.split(",") if c.strip())
		return tuple(str(c).strip() for c in value if str(c).strip())

	@property
	def is_teacher(self) -> bool:
		return self.rolekey == "teachers"

	@property
	def class_string(self) -> str:
		if self.class_raw is not None:
			return self.class_raw
		return ",".join(self.classes)

	def to_payload(self) -> Dict[str, Any]:
		"""Wire form of the claims; ``iat``/``exp`` are included once the token has them."""
		payload: Dict[str, Any] = {
			"memberId": self.member_id,
			"rolekey": self.rolekey,
			"school": self.school,
			"email": self.email,
			"class": self.class_string,
		}
		if self.iat is not None:
			payload["iat"] = self.iat
		if self.exp is not None:
			payload["exp"] = self.exp
		return payload


def extract_bearer(header_value: Optional[str]) -> Optional[str]:
	if not header_value:
		return None
	parts = header_value.split()
	# Scheme comparison is case-sensitive
	if len(parts) == 2 and parts[0] == BEARER_SCHEME:
		return parts[1]
	return None


def issue_token(
	claims: Claims,
	secret: str,
	ttl: timedelta,
	*,
	algorithm: str = "HS256",
	now: Optional[datetime] = None,
) -> str:
	issued_at = now or datetime.now(timezone.utc)
	to_encode: Dict[str, Any] = claims.to_payload()
	to_encode.update({"iat": issued_at, "exp": issued_at + ttl})
	return jwt.encode(to_encode, secret, algorithm=algorithm)


def verify_token(token: str, secret: str, *, algorithm: str = "HS256") -> Optional[Claims]:
	"""Decode ``token`` and return its claims, or ``None`` for any failure.

	Bad signatures, expired tokens, malformed tokens and payloads missing the
	identity fields all collapse to the same ``None`` result.
	"""
	try:
		payload = jwt.decode(token, secret, algorithms=[algorithm])
		return Claims.model_validate(payload)
	except (JWTError, ValidationError) as e:
		logger.warning("Token verification failed: %s", type(e).__name__)
		return None


class TokenVerifier:
	def __init__(self, secret: str, *, algorithm: str = "HS256", lifetime: timedelta = timedelta(days=7)) -> None:
		if not secret:
			raise ValueError("a signing secret is required")
		self._secret = secret
		self.algorithm = algorithm
		self.lifetime = lifetime

	@classmethod
	def from_settings(cls, settings: Settings) -> "TokenVerifier":
		return cls(
			settings.jwt_secret,
			algorithm=settings.jwt_algorithm,
			lifetime=timedelta(minutes=settings.jwt_expires_minutes),
		)

	def verify(self, token: str) -> Optional[Claims]:
		return verify_token(token, self._secret, algorithm=self.algorithm)

	def issue(self, claims: Claims, ttl: Optional[timedelta] = None, *, now: Optional[datetime] = None) -> str:
		return issue_token(claims, self._secret, ttl or self.lifetime, algorithm=self.algorithm, now=now)
