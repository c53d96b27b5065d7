"""Admin and auth API payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from policymap.schemas.proposal import ProposalId


class LoginRequest(BaseModel):
    username: str | None = None
    password: str = Field(default="", max_length=1024)


class AuthResult(BaseModel):
    """Body of login/logout responses."""

    success: bool
    message: str
    lockedUntil: float | None = None
    attempts: int | None = None


class DeleteResult(BaseModel):
    """Generic delete response payload."""

    id: ProposalId
    deleted: bool


class HistoryEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: str
    timestamp: int | str | None = None
    details: str = ""
    proposal: dict[str, Any] | None = None


class MigrationResult(BaseModel):
    status: str
    inserted: int
    skipped: int
    failed: int
    batches: int
    error: str | None = None
