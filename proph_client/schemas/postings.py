from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

PostingStatus = Literal["active", "expired"]

EDITABLE_FIELDS = frozenset(
    {
        "position_title",
        "position_description",
        "min_height",
        "height",
        "graduation_year",
        "gpa",
        "application_deadline",
        "deadline",
    }
)


class School(BaseModel):
    id: str | None = None
    name: str = "Unknown School"
    logo: str = ""
    division: str = "Unknown"
    location: str = ""
    conference: str | None = None


class PostingRequirements(BaseModel):
    min_gpa: float | None = None
    graduation_year: int | None = None
    min_height_inches: int | None = None


class Posting(BaseModel):
    id: int
    coach_user_id: int | None = None
    school: School = Field(default_factory=School)
    position: str = "Position"
    description: str = ""
    requirements: PostingRequirements = Field(default_factory=PostingRequirements)
    deadline: datetime
    is_active: bool = True
    is_general: bool = False
    has_applied: bool = False
    application_count: int = 0
    match_score: float | None = None
    can_delete: bool = True
    coach_name: str = "Coach"
    created_at: datetime

    @property
    def status(self) -> PostingStatus:
        return "active" if self.is_active else "expired"


class PostingSummary(BaseModel):
    id: int
    position: str = "Position"
    total_applications: int = 0


class EligibilityPostingSnapshot(BaseModel):
    id: int | None = None
    school: str = ""
    division: str = ""
    gender: str = ""


class EligibilityResult(BaseModel):
    eligible: bool
    reasons: list[str] = Field(default_factory=list)
    posting: EligibilityPostingSnapshot | None = None
    degraded: bool = False


class PostingUpdateReceipt(BaseModel):
    id: int | str
    message: str = ""


class PostingDeleteReceipt(BaseModel):
    message: str = ""
    deleted_applications: int = 0
