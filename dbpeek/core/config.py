import secrets
from functools import lru_cache
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

APP_TITLE = "DB Peek"
APP_VERSION = "0.3-mysql-only"

DEFAULT_APP_PASS = "change-this"
MAX_ROWS_PER_PAGE = 500


class Settings(BaseSettings):
    MYSQL_HOST: str = "127.0.0.1"
    MYSQL_PORT: int = 3306
    MYSQL_DB: str = "test"
    MYSQL_USER: str = "root"
    MYSQL_PASS: str = ""
    MYSQL_CHARSET: str = "utf8mb4"

    # Full async URL, wins over the MYSQL_* keys when set
    DATABASE_URL: Optional[str] = None

    APP_USER: str = "user"
    APP_PASS: str = DEFAULT_APP_PASS

    ROWS_PER_PAGE: int = 50
    ALLOW_WRITE: bool = False
    ALLOW_IPS: str = ""
    ACCESS_TOKEN: Optional[str] = None
    QUERY_TIMEOUT_SECONDS: Optional[float] = None

    SECRET_KEY: str = Field(default_factory=lambda: secrets.token_hex(32))
    ALGORITHM: str = "HS256"
    SESSION_EXPIRE_MINUTES: int = 480

    LOG_LEVEL: str = "INFO"
    HOST: str = "127.0.0.1"
    PORT: int = 8000

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("ALLOW_WRITE", mode="before")
    @classmethod
    def blank_means_off(cls, value):
        if value is None or (isinstance(value, str) and value.strip() == ""):
            return False
        return value

    @field_validator(
        "ACCESS_TOKEN", "DATABASE_URL", "QUERY_TIMEOUT_SECONDS", mode="before"
    )
    @classmethod
    def blank_means_unset(cls, value):
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return URL.create(
            "mysql+aiomysql",
            username=self.MYSQL_USER,
            password=self.MYSQL_PASS,
            host=self.MYSQL_HOST,
            port=self.MYSQL_PORT,
            database=self.MYSQL_DB,
            query={"charset": self.MYSQL_CHARSET},
        )

    @property
    def default_password_active(self) -> bool:
        return self.APP_PASS == DEFAULT_APP_PASS


class AccessPolicy(BaseModel):
    """Process-wide, read-only view of the settings that gate data access."""

    allow_write: bool = False
    rows_per_page: int = 50
    ip_allow_list: FrozenSet[str] = frozenset()
    access_token: Optional[str] = None
    query_timeout_seconds: Optional[float] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AccessPolicy":
        ips = frozenset(ip.strip() for ip in settings.ALLOW_IPS.split(",") if ip.strip())
        return cls(
            allow_write=settings.ALLOW_WRITE,
            rows_per_page=max(1, min(MAX_ROWS_PER_PAGE, settings.ROWS_PER_PAGE)),
            ip_allow_list=ips,
            access_token=settings.ACCESS_TOKEN,
            query_timeout_seconds=settings.QUERY_TIMEOUT_SECONDS,
        )


# Built once per process; tests swap them through dependency_overrides
@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_policy() -> AccessPolicy:
    return AccessPolicy.from_settings(get_settings())
