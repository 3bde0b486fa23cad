from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "chatbot"
    postgres_user: str = "chatbot"
    db_password: str = "changeme"

    # Model provider
    model_provider: str = "gemini"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com"
    ollama_host: str = "localhost"
    ollama_port: int = 11434
    ollama_model: str = "qwen2.5:7b"
    provider_timeout: float = 120.0

    # Auth
    jwt_secret_key: str = "supersecretkey-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7
    seed_user_password: str = ""

    # App
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Client
    server_url: str = "http://localhost:8000"
    char_delay: float = 0.005

    @property
    def database_url(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.db_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def ollama_base_url(self) -> str:
        return f"http://{self.ollama_host}:{self.ollama_port}"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
