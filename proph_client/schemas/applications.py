from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from proph_client.core.errors import MissingIdentifierError
from proph_client.schemas.players import ApplicantSummary
from proph_client.schemas.postings import Posting, PostingSummary

ApplicationStatus = Literal["pending", "accepted", "rejected"]
ReviewDecision = Literal["accepted", "rejected"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"accepted", "rejected"})


@dataclass(frozen=True, slots=True)
class ApplicationKey:
    """Identity of an application row.

    ``application_id`` is the true numeric identifier and may be absent when the
    backend omits it. ``display_key`` is always available for grouping and
    rendering but is never accepted by a mutating call.
    """

    application_id: int | None
    posting_id: int
    player_user_id: int
    applied_at: datetime

    @property
    def display_key(self) -> str:
        if self.application_id is not None:
            return str(self.application_id)
        return f"{self.posting_id}-{self.player_user_id}-{self.applied_at.isoformat()}"

    @property
    def has_id(self) -> bool:
        return self.application_id is not None

    def require_id(self) -> int:
        if self.application_id is None:
            raise MissingIdentifierError(
                f"application {self.display_key} has no application_id; accept/reject requires the true identifier"
            )
        return self.application_id


class Application(BaseModel):
    application_id: int | None = None
    posting_id: int
    player_user_id: int
    message: str | None = None
    status: ApplicationStatus = "pending"
    applied_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by_coach_id: int | None = None
    posting: Posting | None = None
    player: ApplicantSummary | None = None

    @property
    def key(self) -> ApplicationKey:
        return ApplicationKey(
            application_id=self.application_id,
            posting_id=self.posting_id,
            player_user_id=self.player_user_id,
            applied_at=self.applied_at,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class SubmitReceipt(BaseModel):
    id: int
    message: str = ""


class PendingReview(BaseModel):
    by_posting: dict[int, list[Application]] = Field(default_factory=dict)
    postings: dict[int, PostingSummary] = Field(default_factory=dict)
    zero_application_postings: list[PostingSummary] = Field(default_factory=list)
    total_pending: int = 0

    def applications(self) -> list[Application]:
        return [application for rows in self.by_posting.values() for application in rows]


class AggregateCount(BaseModel):
    pending_count: int = 0
    school_id: int | None = None
    fetched_at: datetime
