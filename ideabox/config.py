from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "ideabox"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # Database - SQLite local file by default
    DATABASE_URL: str = "sqlite:///./data/ideabox.db"

    # Encryption secret for API key storage
    ENCRYPTION_SECRET: str = "change-me-in-production-use-a-real-secret"

    # Outbound AI calls
    AI_REQUEST_TIMEOUT: float = 30.0
    DEFAULT_OPENAI_MODEL: str = "gpt-4o"
    DEFAULT_PERPLEXITY_MODEL: str = "llama-3.1-sonar-small-128k-online"
    DEFAULT_ANTHROPIC_MODEL: str = "claude-3-opus-20240229"
    DEFAULT_GOOGLE_MODEL: str = "gemini-1.5-pro"
    SUMMARY_MODEL: str = "gpt-4o-mini"

    # Env var fallback when no key is active in the store
    FALLBACK_OPENAI_API_KEY: str = ""
    FALLBACK_PERPLEXITY_API_KEY: str = ""
    FALLBACK_ANTHROPIC_API_KEY: str = ""
    FALLBACK_GOOGLE_API_KEY: str = ""

    # Authentication (tokens are issued by the external auth provider)
    AUTH_ENABLED: bool = False
    JWT_SECRET: str = "change-me-jwt-secret-in-production"
    JWT_ALGORITHM: str = "HS256"
    ADMIN_CACHE_TTL: int = 300

    # Redis (empty string = use in-memory backend)
    REDIS_URL: str = ""

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    def default_models(self) -> dict[str, str]:
        return {
            "openai": self.DEFAULT_OPENAI_MODEL,
            "perplexity": self.DEFAULT_PERPLEXITY_MODEL,
            "anthropic": self.DEFAULT_ANTHROPIC_MODEL,
            "google": self.DEFAULT_GOOGLE_MODEL,
        }

    def fallback_keys(self) -> dict[str, str]:
        return {
            "openai": self.FALLBACK_OPENAI_API_KEY,
            "perplexity": self.FALLBACK_PERPLEXITY_API_KEY,
            "anthropic": self.FALLBACK_ANTHROPIC_API_KEY,
            "google": self.FALLBACK_GOOGLE_API_KEY,
        }


settings = Settings()
