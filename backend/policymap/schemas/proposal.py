"""Proposal record and request schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

ProposalId = int | str


class Proposal(BaseModel):
    """Canonical proposal record shared by every adapter."""

    model_config = ConfigDict(extra="ignore")

    id: ProposalId | None = None
    slug: str = ""
    title: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    description: str = ""
    background: str = ""
    policy: str = ""
    stakeholders: str = ""
    costs: str = ""
    metrics: str = ""
    timeline: str = ""
    proposal_text: str = ""
    tags: list[str] = Field(default_factory=list)
    lat: float | None = None
    lng: float | None = None
    timestamp: int | None = None
    full_name: str = ""
    email: str = ""
    institution: str = ""
    image: str = ""

    @property
    def has_coordinates(self) -> bool:
        """Whether the record can be placed on the map."""

        return self.lat is not None and self.lng is not None


class ProposalDraft(BaseModel):
    """Admin payload for a new proposal; id, slug and timestamp are assigned."""

    title: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    description: str = ""
    background: str = ""
    policy: str = ""
    stakeholders: str = ""
    costs: str = ""
    metrics: str = ""
    timeline: str = ""
    proposal_text: str = ""
    tags: list[str] = Field(default_factory=list)
    lat: float | None = None
    lng: float | None = None
    full_name: str = ""
    email: str = ""
    institution: str = ""
    image: str = ""


class ProposalPatch(BaseModel):
    """Allowed mutable fields for a proposal; unset fields are left untouched."""

    title: str | None = None
    city: str | None = Field(default=None, min_length=1)
    state: str | None = None
    country: str | None = None
    description: str | None = None
    background: str | None = None
    policy: str | None = None
    stakeholders: str | None = None
    costs: str | None = None
    metrics: str | None = None
    timeline: str | None = None
    proposal_text: str | None = None
    tags: list[str] | None = None
    lat: float | None = None
    lng: float | None = None
    full_name: str | None = None
    email: str | None = None
    institution: str | None = None
    image: str | None = None

    @model_validator(mode="after")
    def validate_non_empty_update(self) -> "ProposalPatch":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided.")
        return self
