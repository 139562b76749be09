from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Auth configuration (simple in-memory user store via env)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Draft API used by the wizard client
	draft_api_base_url: str = Field(default="http://localhost:8000", validation_alias="DRAFT_API_BASE_URL")
	draft_api_token: str | None = Field(default=None, validation_alias="DRAFT_API_TOKEN")
	draft_api_timeout_seconds: float = Field(default=30.0, validation_alias="DRAFT_API_TIMEOUT_SECONDS")

	# Autosave ticker (seconds between timer-triggered saves)
	autosave_interval_seconds: float = Field(default=10.0, validation_alias="AUTOSAVE_INTERVAL_SECONDS")
	autosave_enabled: bool = Field(default=True, validation_alias="AUTOSAVE_ENABLED")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
