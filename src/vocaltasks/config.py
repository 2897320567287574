from pydantic_settings import BaseSettings, SettingsConfigDict

# Values shipped in .env.example; a key left at one of these is not a credential.
PLACEHOLDER_API_KEYS = frozenset({"your_api_key_here", "changeme", "dummy-key"})


def is_usable_api_key(value: str | None) -> bool:
    if not value:
        return False
    value = value.strip()
    return bool(value) and value.lower() not in PLACEHOLDER_API_KEYS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    ai_model: str = ""

    app_timezone: str = "Europe/Paris"
    llm_timeout_seconds: float = 30.0

    # Sentry error tracking
    sentry_dsn: str = ""
    sentry_environment: str = "production"

    log_level: str = "INFO"

    @property
    def has_gemini(self) -> bool:
        return is_usable_api_key(self.gemini_api_key)

    @property
    def has_openai(self) -> bool:
        return is_usable_api_key(self.openai_api_key)

    @property
    def has_llm(self) -> bool:
        return self.has_gemini or self.has_openai

    @property
    def has_sentry(self) -> bool:
        return bool(self.sentry_dsn)


settings = Settings()
