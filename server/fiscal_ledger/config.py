from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_env: str = "local"
    database_url: str = "sqlite:///./fiscal_ledger.db"
    secret_key: str = "fiscal-ledger-dev-secret"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 12
    log_level: str = "INFO"
    # Comma separated; kept as a string so plain CSV env values parse.
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"
    # Zero-padding width for fiscal and control numbers of newly created sequences.
    fiscal_number_padding: int = 8

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
