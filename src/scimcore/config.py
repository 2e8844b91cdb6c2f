from typing import List, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    # Application Configuration
    app_name: str = Field("scimcore", description="Application name")
    environment: str = Field("development", description="Environment (development, staging, production)")
    debug: bool = Field(True, description="Debug mode")
    log_level: str = Field("INFO", description="Logging level")
    engine_log_level: Optional[str] = Field(None, description="Logging level for the scimcore.engine loggers; defaults to log_level")

    # API Configuration
    api_prefix: str = Field("/scim/v2", description="API route prefix")
    cors_origins: List[str] = Field(["http://localhost:3000"], description="Allowed CORS origins")
    documentation_uri: Optional[str] = Field(None, description="Advertised as documentationUri by /ServiceProviderConfig")

    # Pagination
    default_page_size: int = Field(100, description="Default page size")
    max_page_size: int = Field(1000, description="Maximum page size")

    # Validation
    strict_attributes: bool = Field(True, description="Reject attributes not declared by the resource schemas")

    # Storage
    storage_backend: str = Field("memory", description="Resource storage backend (memory, database)")
    database_url: str = Field("sqlite://scimcore.sqlite3", description="Tortoise ORM database URL")
    storage_timeout: float = Field(5.0, description="Seconds before a storage call is reported unavailable")

    # Server
    host: str = Field("0.0.0.0", description="Server host")
    port: int = Field(8000, description="Server port")
    reload: bool = Field(True, description="Enable auto-reload")

    @field_validator("environment")
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of {allowed}")
        return v

    @field_validator("log_level", "engine_log_level")
    def validate_log_level(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v

    @field_validator("storage_backend")
    def validate_storage_backend(cls, v: str) -> str:
        allowed = ["memory", "database"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"Storage backend must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def tortoise_orm_config(self) -> dict:
        return {
            "connections": {"default": self.database_url},
            "apps": {
                "models": {
                    "models": ["scimcore.models"],
                    "default_connection": "default",
                }
            },
            "use_tz": True,
            "timezone": "UTC",
        }


# Create a singleton instance
settings = Settings()
