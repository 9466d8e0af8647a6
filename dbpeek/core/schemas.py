from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dbpeek.core.config import MAX_ROWS_PER_PAGE


# =========================
# Enums
# =========================
class KeyKind(str, Enum):
    NONE = "none"
    PRIMARY = "primary"
    UNIQUE = "unique"
    INDEX = "index"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


# =========================
# SESSION / AUTH
# =========================
class SessionState(BaseModel):
    """Per-client request context carried in the signed session cookie."""

    sid: str
    authenticated: bool = False
    csrf: str


class LoginRequest(BaseModel):
    username: str
    password: str


class CsrfResponse(BaseModel):
    csrf_token: str


class SessionResponse(BaseModel):
    authenticated: bool
    mode: str
    default_password_active: bool


# =========================
# METADATA
# =========================
class ColumnDescriptor(BaseModel):
    name: str
    type: str
    nullable: bool
    key_kind: KeyKind = KeyKind.NONE
    default_value: Optional[str] = None
    extra: str = ""

    model_config = ConfigDict(frozen=True)


class TableSummary(BaseModel):
    name: str
    # Advisory only, None when the count could not be taken
    rows: Optional[int] = None


class ConnectionInfo(BaseModel):
    driver: str
    host: Optional[str] = None
    database: Optional[str] = None
    mode: str


class TablesResponse(BaseModel):
    connection: ConnectionInfo
    tables: List[TableSummary]
    total: int


class SchemaResponse(BaseModel):
    table: str
    columns: List[ColumnDescriptor]


# =========================
# BROWSE
# =========================
class PageRequest(BaseModel):
    """
    One page of a table, as asked for by the operator.
    Out-of-range numbers are clamped rather than rejected.
    """

    table: str
    page_number: int = 1
    page_size: int = 50
    sort_column: Optional[str] = None
    sort_direction: SortDirection = SortDirection.ASC

    @field_validator("page_number", mode="before")
    @classmethod
    def clamp_page_number(cls, value):
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return 1

    @field_validator("page_size", mode="before")
    @classmethod
    def clamp_page_size(cls, value):
        try:
            return max(1, min(MAX_ROWS_PER_PAGE, int(value)))
        except (TypeError, ValueError):
            return 50

    @field_validator("sort_direction", mode="before")
    @classmethod
    def normalize_direction(cls, value):
        value = getattr(value, "value", value)
        direction = str(value or "").strip().upper()
        return direction if direction in ("ASC", "DESC") else "ASC"

    @field_validator("sort_column", mode="before")
    @classmethod
    def blank_sort_column(cls, value):
        return value or None

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size


class RowSet(BaseModel):
    columns: List[str] = []
    rows: List[Dict[str, Any]] = []


class PageLinks(BaseModel):
    first: int
    prev: int
    next: int
    last: int


class BrowseResponse(RowSet):
    table: str
    page: int
    per_page: int
    total_rows: int
    total_pages: int
    sort_column: Optional[str] = None
    sort_direction: SortDirection
    links: PageLinks
    query_prefill: str


# =========================
# AD-HOC QUERY
# =========================
class QueryRequest(BaseModel):
    sql: str = ""


class QuerySuccess(RowSet):
    status: Literal["success"] = "success"
    elapsed_ms: int


class QueryFailure(BaseModel):
    status: Literal["failure"] = "failure"
    reason: str
    # None when the statement was refused before reaching the database
    elapsed_ms: Optional[int] = None


QueryOutcome = Annotated[Union[QuerySuccess, QueryFailure], Field(discriminator="status")]
