from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = Field("dev", alias="APP_ENV")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_name: str = Field("stowmap", alias="DB_NAME")
    db_user: str = Field("stowmap", alias="DB_USER")
    db_password: str = Field("stowmappass", alias="DB_PASSWORD")
    database_url_override: Optional[str] = Field(None, alias="DATABASE_URL")
    jwt_secret: str = Field("devsecret", alias="JWT_SECRET")
    jwt_access_expire_min: int = Field(15, alias="JWT_ACCESS_EXPIRE_MIN")
    jwt_refresh_expire_days: int = Field(7, alias="JWT_REFRESH_EXPIRE_DAYS")
    rate_limit_login_per_min: int = Field(8, alias="RATE_LIMIT_LOGIN_PER_MIN")
    lock_expiration_seconds: int = Field(300, alias="LOCK_EXPIRATION_SECONDS")
    max_revisions: int = Field(50, alias="MAX_REVISIONS")
    revision_near_limit_margin: int = Field(5, alias="REVISION_NEAR_LIMIT_MARGIN")
    grid_size: float = Field(50, alias="GRID_SIZE")
    blob_dir: str = Field("./blobs", alias="BLOB_DIR")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def lock_expiration(self) -> timedelta:
        return timedelta(seconds=self.lock_expiration_seconds)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
