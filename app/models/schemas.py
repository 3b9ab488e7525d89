"""Pydantic schemas for poll requests and query filters."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

SortOrder = Literal["newest", "oldest", "most-voted", "least-voted"]


class PollFilters(BaseModel):
    search: Optional[str] = Field(None, max_length=100, description="Matched against question and description")
    sort_by: SortOrder = "newest"
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)


class PollCreate(BaseModel):
    question: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    options: list[str] = Field(..., min_length=2, max_length=10)
    is_public: bool = True
    allow_multiple_votes: bool = False
    expires_at: Optional[datetime] = None

    @field_validator("options")
    @classmethod
    def options_must_be_distinct(cls, options: list[str]) -> list[str]:
        cleaned = [o.strip() for o in options]
        if any(not o or len(o) > 100 for o in cleaned):
            raise ValueError("each option must be 1-100 characters")
        if len({o.lower() for o in cleaned}) != len(cleaned):
            raise ValueError("options must be unique")
        return cleaned


class PollUpdate(BaseModel):
    question: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    is_public: Optional[bool] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None


class VoteCreate(BaseModel):
    option_index: int = Field(..., ge=0)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    avatar: Optional[str] = None
