import json
import re
from typing import List, Optional

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from typing_extensions import Annotated

_DEV_CORS_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:5174",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = Field(
        default="Cashplan API", validation_alias=AliasChoices("PROJECT_NAME", "app_name")
    )
    environment: str = Field(default="dev", validation_alias=AliasChoices("ENVIRONMENT", "environment"))
    build_version: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("BUILD_VERSION", "build_version")
    )
    # API prefix used by FastAPI router include, e.g. "/api/v1".
    api_prefix: str = Field(default="", validation_alias=AliasChoices("API_V1_STR", "api_prefix"))
    enable_docs: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("ENABLE_DOCS", "enable_docs"),
        validate_default=True,
    )
    # NoDecode: accept JSON, Python-ish list strings or CSV without pre-decoding.
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        validation_alias=AliasChoices("CORS_ORIGINS", "cors_origins"),
        validate_default=True,
    )
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    slow_request_ms: int = Field(
        default=2000, validation_alias=AliasChoices("SLOW_REQUEST_MS", "slow_request_ms")
    )

    @field_validator("enable_docs", mode="before")
    @classmethod
    def default_enable_docs(cls, value, info: ValidationInfo):
        if value is None or value == "":
            env = str(info.data.get("environment", "dev") or "dev").lower()
            return env in {"dev", "development", "test"}
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "y", "on"}
        return bool(value)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_and_default_cors_origins(cls, value, info: ValidationInfo):
        env = str(info.data.get("environment", "dev") or "dev").lower()

        def _normalize_origin(o: str) -> str:
            s = str(o).strip().strip('"').strip("'")
            # Browsers send the Origin header without a trailing slash.
            if s.endswith("/"):
                s = s[:-1]
            return s

        if value is None or value == "" or value == []:
            if env in {"prod", "production"}:
                raise ValueError("CORS_ORIGINS must be explicitly set in production")
            return list(_DEV_CORS_ORIGINS)

        if isinstance(value, str):
            s = value.strip()
            # Many .env / docker setups wrap JSON in quotes. Strip a single pair.
            if (s.startswith('"') and s.endswith('"')) or (s.startswith("'") and s.endswith("'")):
                s = s[1:-1].strip()

            try:
                parsed = json.loads(s)
                if isinstance(parsed, str):
                    return [_normalize_origin(parsed)]
                if isinstance(parsed, list):
                    return [_normalize_origin(v) for v in parsed if str(v).strip()]
                return [_normalize_origin(str(parsed))]
            except json.JSONDecodeError:
                pass

            # Python-ish list strings: ['http://...','http://...']
            if s.startswith("[") and s.endswith("]") and "'" in s and '"' not in s:
                try:
                    parsed = json.loads(s.replace("'", '"'))
                    if isinstance(parsed, list):
                        return [_normalize_origin(v) for v in parsed if str(v).strip()]
                except json.JSONDecodeError:
                    pass

            return [_normalize_origin(v) for v in s.split(",") if str(v).strip()]

        return [_normalize_origin(v) for v in value if str(v).strip()]

    @field_validator("api_prefix", mode="before")
    @classmethod
    def normalize_api_prefix(cls, v) -> str:
        """Normalize API prefix coming from env/.env.

        On Windows Git Bash (MSYS), "/api/v1" may arrive as a Windows path
        (e.g. "C:/Program Files/Git/api/v1"); keep only the trailing "/api/..." part.
        """
        if v is None:
            return ""
        s = str(v).strip()
        if not s:
            return ""
        if s.startswith("/api/") or s == "/api":
            return s

        m = re.search(r"(/api/\S+)$", s.replace("\\", "/"))
        if m:
            return m.group(1)

        if s.startswith("api/"):
            return f"/{s}"
        return s

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v) -> str:
        s = str(v or "INFO").strip().upper()
        return s if s in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO"


settings = Settings()
