"""
SnipVault Backend — Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models defining the JSON contract of the API.
Why:   Strict validation of write bodies, camelCase serialization, OpenAPI docs.
How:   FastAPI validates request bodies against SnippetCreate / SnippetUpdate;
       the serverless handler calls model_validate() on the same classes.

Write path vs read path:
    Create/update bodies are STRICT: every problem becomes a 400 with a
    per-field message. List/filter query parameters are deliberately NOT
    modelled here; they are parsed permissively by the query builder.

Normalization applied on write:
    title, description → trimmed
    language           → trimmed, lower-cased
    tags               → each trimmed, lower-cased; order and duplicates kept
    code               → stored exactly as sent
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
LANGUAGE_MAX_LENGTH = 50
TAG_MAX_LENGTH = 100


class CamelModel(BaseModel):
    """Accepts and emits camelCase field names; snake_case also accepted on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ══════════════════════════════════════════════════════════════════════════
# Field normalizers shared by create and update
# ══════════════════════════════════════════════════════════════════════════


def normalize_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Title is required")
    if len(value) > TITLE_MAX_LENGTH:
        raise ValueError(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
    return value


def normalize_description(value: str) -> str:
    value = value.strip()
    if len(value) > DESCRIPTION_MAX_LENGTH:
        raise ValueError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
    return value


def normalize_language(value: str) -> str:
    value = value.strip().lower()
    if not value:
        raise ValueError("Programming language is required")
    if len(value) > LANGUAGE_MAX_LENGTH:
        raise ValueError(f"Language cannot exceed {LANGUAGE_MAX_LENGTH} characters")
    return value


def check_code(value: str) -> str:
    if not value.strip():
        raise ValueError("Code content is required")
    return value


def normalize_tags(values: List[str]) -> List[str]:
    tags = []
    for value in values:
        tag = value.strip().lower()
        if not tag:
            raise ValueError("Tags cannot be empty")
        if len(tag) > TAG_MAX_LENGTH:
            raise ValueError(f"Tags cannot exceed {TAG_MAX_LENGTH} characters")
        tags.append(tag)
    return tags


# ══════════════════════════════════════════════════════════════════════════
# Request Models — What the client sends in the body
# ══════════════════════════════════════════════════════════════════════════


class SnippetCreate(CamelModel):
    """Body of POST /api/snippets. Owner fields come from the token, never the body."""

    title: str
    description: Optional[str] = None
    language: str
    code: str
    tags: List[str] = Field(default_factory=list)
    is_public: bool = False

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return normalize_title(v)

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: str) -> str:
        return normalize_language(v)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return check_code(v)

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        return normalize_tags(v)

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return normalize_description(_not_null(v, "Description"))


def _not_null(value, label: str):
    # Field validators never see omitted fields, only explicit nulls
    if value is None:
        raise ValueError(f"{label} cannot be null")
    return value


class SnippetUpdate(CamelModel):
    """
    Body of PUT /api/snippets/{id}.

    Partial update: only fields present in the body change. At least one
    field must be supplied, and an explicit null is rejected rather than
    silently ignored; send "" to clear the description.
    """

    title: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    code: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return normalize_title(_not_null(v, "Title"))

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return normalize_description(_not_null(v, "Description"))

    @field_validator("language")
    @classmethod
    def validate_language(cls, v: Optional[str]) -> Optional[str]:
        return normalize_language(_not_null(v, "Programming language"))

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: Optional[str]) -> Optional[str]:
        return check_code(_not_null(v, "Code"))

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return normalize_tags(_not_null(v, "Tags"))

    @field_validator("is_public")
    @classmethod
    def validate_is_public(cls, v: Optional[bool]) -> Optional[bool]:
        return _not_null(v, "isPublic")

    @model_validator(mode="after")
    def validate_at_least_one_field(self) -> "SnippetUpdate":
        if not self.changes():
            raise ValueError("At least one field must be provided")
        return self

    def changes(self) -> dict:
        """Supplied fields keyed by attribute name. Validators have already ruled out nulls."""
        return self.model_dump(exclude_unset=True)


# ══════════════════════════════════════════════════════════════════════════
# Response Models — What the API returns to clients
# ══════════════════════════════════════════════════════════════════════════


class SnippetResponse(CamelModel):
    """A stored snippet, as returned by every snippet endpoint."""

    id: uuid.UUID
    owner_id: str
    owner_email: Optional[str] = None
    title: str
    description: Optional[str] = None
    language: str
    code: str
    tags: List[str]
    is_public: bool
    created_at: datetime
    updated_at: datetime


class PaginationInfo(CamelModel):
    page: int = Field(description="1-based page number actually served")
    limit: int = Field(description="Page size actually applied (1-50)")
    total: int = Field(description="Records matching the filter, ignoring pagination")
    pages: int = Field(description="ceil(total / limit)")


class SnippetListResponse(CamelModel):
    snippets: List[SnippetResponse]
    pagination: PaginationInfo


class DeleteResponse(CamelModel):
    message: str = "Snippet deleted successfully"


class CountEntry(BaseModel):
    """One row of a top-N aggregation; `_id` is the grouped value."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    count: int


class StatsResponse(CamelModel):
    total_snippets: int
    top_languages: List[CountEntry]
    top_tags: List[CountEntry]


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "Snippet not found",
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[list] = Field(default=None, description="Per-field validation errors")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(CamelModel):
    status: str = Field(description="healthy or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    uptime_seconds: float
