import warnings
from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, Field, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_prefix="MES_",
        env_ignore_empty=True,
        extra="ignore",
    )
    PROJECT_NAME: str = "Production Execution"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Execution policies
    OVER_PRODUCTION_TOLERANCE: int = Field(default=0, ge=0)
    CANCEL_REVERSES_RESULTS: bool = False
    PERSISTENCE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # Persistence
    STORE_BACKEND: Literal["memory", "sql"] = "memory"
    DATABASE_URL: str = "sqlite://"
    DATABASE_WORKERS: int = Field(default=10, gt=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_in_memory_database(self) -> bool:
        return self.DATABASE_URL in ("sqlite://", "sqlite:///:memory:")

    # Audit
    AUDIT_INTEGRITY_SECRET: str | None = None

    # Observability Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "json"
    LOG_SQL: bool = False
    ENABLE_METRICS: bool = True

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._check_default_secret(
            "AUDIT_INTEGRITY_SECRET", self.AUDIT_INTEGRITY_SECRET
        )
        return self


settings = Settings()  # type: ignore
