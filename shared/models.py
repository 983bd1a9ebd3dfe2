"""Pydantic contracts shared across backend and gateway."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServiceErrorCode(str, Enum):
    """Stable error codes for service contracts across layers."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONFLICT = "CONFLICT"
    BACKEND_ERROR = "BACKEND_ERROR"


class ServiceError(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: ServiceErrorCode
    message: str
    details: dict[str, object] | None = None


# Auth


class AuthUser(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uid: str
    email: str | None = None
    display_name: str | None = None
    photo_url: str | None = None


class AuthSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = "bearer"


class AuthResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user: AuthUser | None = None
    session: AuthSession | None = None
    message: str | None = None


# User documents


class UserSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    currency: str = "MUR"
    language: str = "en"
    theme: str = "light"
    notifications: bool = True


class UserProfileDetails(BaseModel):
    model_config = ConfigDict(extra="allow")

    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    date_of_birth: date | None = None
    occupation: str = ""
    bank_accounts: list[dict[str, Any]] = Field(default_factory=list)


class SubscriptionFeatures(BaseModel):
    model_config = ConfigDict(extra="allow")

    max_statements: int = 10
    max_exports: int = 5
    advanced_analytics: bool = False


class Subscription(BaseModel):
    model_config = ConfigDict(extra="allow")

    plan: str = "free"
    start_date: datetime | None = None
    end_date: datetime | None = None
    features: SubscriptionFeatures = Field(default_factory=SubscriptionFeatures)


class UserDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: str = ""
    email: str | None = None
    photo_url: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    settings: UserSettings = Field(default_factory=UserSettings)
    profile: UserProfileDetails = Field(default_factory=UserProfileDetails)
    subscription: Subscription = Field(default_factory=Subscription)


# Statements


class StatementStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class StatementCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    file_name: str = Field(min_length=1)
    file_size: int | None = Field(default=None, ge=0)
    file_url: str | None = None
    file_path: str | None = None
    bank_name: str | None = None
    account_number: str | None = None
    statement_period: str | None = None
    total_transactions: int | None = Field(default=None, ge=0)
    processing_time: float | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


class Statement(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    user_id: str
    file_name: str
    file_size: int | None = None
    file_url: str | None = None
    file_path: str | None = None
    bank_name: str | None = None
    account_number: str | None = None
    statement_period: str | None = None
    total_transactions: int | None = None
    status: StatementStatus = StatementStatus.PROCESSED
    processing_time: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class StatementsListResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[Statement]


# Transactions


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: date
    description: str = ""
    amount: Decimal
    type: TransactionType
    category: str | None = None
    subcategory: str | None = None
    balance: Decimal | None = None
    reference: str | None = None
    is_recurring: bool = False
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, value: list[str]) -> list[str]:
        return [tag.strip() for tag in value if tag and tag.strip()]


class Transaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    statement_id: UUID
    date: date
    description: str = ""
    amount: Decimal
    type: TransactionType
    category: str | None = None
    subcategory: str | None = None
    balance: Decimal | None = None
    reference: str | None = None
    is_recurring: bool = False
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TransactionFilters(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: str | None = None
    limit: int | None = Field(default=None, ge=1, le=1000)


class TransactionsSaveResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    count: int


class TransactionsListResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[Transaction]


# Files


class FileValidation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    is_valid: bool
    error: str | None = None


class FileMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    size: int | None = None
    content_type: str | None = None
    time_created: str | None = None
    full_path: str


class UploadResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str
    metadata: FileMetadata


class FileUrlResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str


class BatchDeleteTally(BaseModel):
    model_config = ConfigDict(extra="forbid")

    successful: int
    failed: int
    total: int


# Exports


class ExportType(str, Enum):
    CSV = "csv"
    PDF = "pdf"


class ExportLogCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    export_type: ExportType
    format: str
    filters: dict[str, Any] = Field(default_factory=dict)
    record_count: int = Field(ge=0)
    file_size: int | None = Field(default=None, ge=0)
    download_url: str | None = None


class ExportLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: UUID
    user_id: str
    export_type: ExportType
    format: str
    filters: dict[str, Any] = Field(default_factory=dict)
    record_count: int = 0
    file_size: int | None = None
    download_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ExportResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    log: ExportLog
    url: str
    file_path: str


class ExportLogsListResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[ExportLog]
