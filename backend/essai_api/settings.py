from __future__ import annotations

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Settings(BaseSettings):
	# Token signing (symmetric secret shared with the issuing site)
	jwt_secret: str = Field(validation_alias="JWT_SECRET")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	# 7 days, matching tokens minted by the member site
	jwt_expires_minutes: int = Field(default=7 * 24 * 60, validation_alias="JWT_EXPIRES_MINUTES")

	# Teacher roster cache
	roster_cache_max_entries: int = Field(default=500, validation_alias="ROSTER_CACHE_MAX_ENTRIES")
	roster_cache_ttl_seconds: float = Field(default=300.0, validation_alias="ROSTER_CACHE_TTL_SECONDS")
	# "database" reads MemberLookup directly, "wix" goes through the Wix Data API
	roster_source: str = Field(default="database", validation_alias="ROSTER_SOURCE")
	wix_api_key: str | None = Field(default=None, validation_alias="WIX_API_KEY")
	wix_site_id: str | None = Field(default=None, validation_alias="WIX_SITE_ID")
	wix_base_url: str = Field(default="https://www.wixapis.com/wix-data/v2", validation_alias="WIX_BASE_URL")

	# Database
	database_url: str = Field(default="sqlite:///./essai.db", validation_alias="DATABASE_URL")

	# Application
	api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")
	app_version: str = Field(default="1.0.0", validation_alias="APP_VERSION")
	app_env: str = Field(default="development", validation_alias="APP_ENV")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

	@field_validator("jwt_secret")
	@classmethod
	def _secret_not_blank(cls, value: str) -> str:
		if not value or not value.strip():
			raise ValueError("JWT_SECRET must not be empty")
		return value

	@field_validator("roster_cache_max_entries", "roster_cache_ttl_seconds", "jwt_expires_minutes")
	@classmethod
	def _positive(cls, value):
		if value <= 0:
			raise ValueError("must be greater than zero")
		return value

	@field_validator("roster_source")
	@classmethod
	def _known_source(cls, value: str) -> str:
		value = (value or "").strip().lower()
		if value not in ("database", "wix"):
			raise ValueError('ROSTER_SOURCE must be "database" or "wix"')
		return value


def load_settings(**overrides) -> Settings:
	"""Build settings from the environment, failing fast on bad configuration."""
	try:
		settings = Settings(**overrides)
	except ValidationError as e:
		raise ConfigurationError(f"Invalid configuration: {e}") from e
	if settings.roster_source == "wix" and not (settings.wix_api_key and settings.wix_site_id):
		raise ConfigurationError("WIX_API_KEY and WIX_SITE_ID are required when ROSTER_SOURCE=wix")
	return settings
