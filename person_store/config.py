"""
Configuration settings for person-store.

Uses Pydantic Settings to load the named connection profile (database URL or
parts, driver, credentials, schema-evolution policy) plus logging and workflow
defaults from environment variables or a `.env` file. The resulting `Settings`
object is passed explicitly to the session factory and the workflow runner.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional
from urllib.parse import quote

import psycopg
from psycopg.conninfo import conninfo_to_dict, make_conninfo
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from person_store.persistence.schema import SchemaPolicy

SUPPORTED_DRIVERS = ("postgresql", "postgres")


class Settings(BaseSettings):
    # Connection profile
    persistence_unit: str = Field("person-jpa", alias="PERSISTENCE_UNIT")
    db_driver: str = Field("postgresql", alias="DB_DRIVER")
    db_url: Optional[str] = Field(None, alias="DB_URL", repr=False)
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD", repr=False)
    db_name: str = Field("person_store", alias="DB_NAME")
    db_connect_timeout: int = Field(5, alias="DB_CONNECT_TIMEOUT", ge=1)
    db_connect_attempts: int = Field(3, alias="DB_CONNECT_ATTEMPTS", ge=1)
    db_connect_backoff_seconds: float = Field(1.0, alias="DB_CONNECT_BACKOFF_SECONDS", ge=0)
    schema_policy: SchemaPolicy = Field(SchemaPolicy.UPDATE, alias="SCHEMA_POLICY")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Workflow defaults
    sample_name: str = Field("João Bruno", alias="SAMPLE_NAME")
    sample_email: str = Field("joao@gmail.com", alias="SAMPLE_EMAIL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("db_driver")
    @classmethod
    def _normalize_driver(cls, value: str) -> str:
        return value.strip().lower()

    def dsn(self) -> str:
        """
        Compose the connection string for the profile.

        An explicit `DB_URL` wins over the individual host/port/user/password/name
        fields.
        """
        if self.db_url:
            return self.db_url
        return (
            f"postgresql://{quote(self.db_user, safe='')}:{quote(self.db_password, safe='')}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    def redacted_dsn(self) -> str:
        """
        Return the connection string with the password masked, for logs and `info`.

        URL and keyword forms are both parsed by libpq rules, so the result is always
        in keyword form (`user=... password=*** host=...`).
        """
        try:
            params = conninfo_to_dict(self.dsn())
        except psycopg.ProgrammingError:
            return "<unparseable connection string>"
        if "password" in params:
            params["password"] = "***"
        return make_conninfo(**params)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings", "SUPPORTED_DRIVERS"]
