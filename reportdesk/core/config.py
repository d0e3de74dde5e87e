import json
from typing import Annotated, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_PROJECT_NAME = "Campus Report Desk"
DEFAULT_API_V1_PREFIX = "/api/v1"
DEFAULT_FACILITY_LOCATIONS = [
    "Restroom - Ground Floor(010)",
    "Restroom - First Floor(110)",
    "Restroom - Second Floor(210)",
    "Restroom - Third Floor(310)",
    "Restroom - Fourth Floor(410)",
    "Restroom - Fifth Floor(510)",
    "Restroom - Sixth Floor(610)",
]


def _split_list(value):
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return []
        if value.startswith('['):
            return json.loads(value)
        return [item.strip() for item in value.split(',') if item.strip()]
    return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    PROJECT_NAME: str = DEFAULT_PROJECT_NAME
    API_V1_PREFIX: str = DEFAULT_API_V1_PREFIX
    ENV: str = 'development'
    DEBUG: bool = False

    LOG_LEVEL: str = 'INFO'
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ["*"]

    BACKEND_URL: str = 'http://localhost:5000'
    API_TOKEN: Optional[str] = None
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    NOTIFY_RETRY_ATTEMPTS: int = 3
    NOTIFY_RETRY_DELAY_SECONDS: float = 1.0
    RECONCILE_INTERVAL_SECONDS: float = 30.0

    MAX_ATTACHMENT_BYTES: int = 5 * 1024 * 1024
    FACILITY_LOCATIONS: Annotated[list[str], NoDecode] = DEFAULT_FACILITY_LOCATIONS

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, value):  # type: ignore[override]
        if isinstance(value, str) and value.strip() == '*':
            return ['*']
        return _split_list(value)

    @field_validator('FACILITY_LOCATIONS', mode='before')
    @classmethod
    def parse_facility_locations(cls, value):  # type: ignore[override]
        return _split_list(value)

    @field_validator('API_TOKEN', mode='before')
    @classmethod
    def blank_token_is_none(cls, value):  # type: ignore[override]
        if isinstance(value, str) and not value.strip():
            return None
        return value


settings = Settings()
