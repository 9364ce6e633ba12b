from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

DEFAULT_JWT_SECRET = "change-me"


class Settings(BaseSettings):
	app_name: str = Field(default="UPSC Prep Dashboard API", validation_alias="APP_NAME")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="UPSC Prep Dashboard", validation_alias="OPENROUTER_TITLE")

	# Session token
	jwt_secret_key: str = Field(default=DEFAULT_JWT_SECRET, validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	session_days: int = Field(default=7, validation_alias="SESSION_DAYS")
	refresh_days: int = Field(default=30, validation_alias="REFRESH_DAYS")
	refresh_threshold_minutes: int = Field(default=120, validation_alias="REFRESH_THRESHOLD_MINUTES")
	cookie_name: str = Field(default="upsc-auth-token", validation_alias="AUTH_COOKIE_NAME")
	cookie_secure: bool = Field(default=False, validation_alias="AUTH_COOKIE_SECURE")
	bcrypt_rounds: int = Field(default=12, validation_alias="BCRYPT_ROUNDS")
	session_log_limit: int = Field(default=100, validation_alias="SESSION_LOG_LIMIT")

	# Seed admin created on first start
	seed_admin_email: str = Field(default="admin@upsc.local", validation_alias="SEED_ADMIN_EMAIL")
	seed_admin_password: str = Field(default="admin123", validation_alias="SEED_ADMIN_PASSWORD")
	seed_admin_name: str = Field(default="System Administrator", validation_alias="SEED_ADMIN_NAME")

	audit_retention_days: int = Field(default=90, validation_alias="AUDIT_RETENTION_DAYS")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
