from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from proph_client.core.errors import AuthorizationError, NotFoundError, StateError, ValidationError
from proph_client.schemas.applications import (
    AggregateCount,
    Application,
    PendingReview,
    ReviewDecision,
    SubmitReceipt,
)
from proph_client.services.http import ApiClient
from proph_client.services.normalizer import (
    normalize_aggregate,
    normalize_application,
    normalize_many,
    normalize_pending_review,
    normalize_submit_receipt,
)

logger = logging.getLogger(__name__)

REVIEW_DECISIONS: frozenset[str] = frozenset({"accepted", "rejected"})

_MUTATION_STATE_ERRORS = {
    400: (StateError, "Application can no longer change status"),
    409: (StateError, "Application has already been reviewed"),
}


class ApplicationGateway:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def submit(self, posting_id: int, message: str | None = None) -> SubmitReceipt:
        payload = await self.api.post(
            "/applications",
            json_body={"posting_id": int(posting_id), "application_message": message or None},
            fallback="Failed to apply to posting",
            status_errors={
                403: (AuthorizationError, "You can only apply to postings that match your gender"),
                400: (StateError, "This posting is no longer accepting applications"),
            },
        )
        return normalize_submit_receipt(payload)

    async def list_mine(self) -> list[Application]:
        payload = await self.api.get("/applications/my", fallback="Failed to fetch applications")
        rows = payload.get("applications") if isinstance(payload, dict) else payload
        applications, _ = normalize_many(normalize_application, rows or [], entity="application")
        return applications

    async def list_for_posting(self, posting_id: int) -> list[Application]:
        payload = await self.api.get(
            f"/applications/posting/{int(posting_id)}",
            fallback="Failed to fetch posting applications",
        )
        rows = payload.get("applications") if isinstance(payload, dict) else payload
        applications, _ = normalize_many(normalize_application, rows or [], entity="application")
        return applications

    async def list_pending_grouped_by_posting(self) -> PendingReview:
        payload = await self.api.get("/applications/pending", fallback="Failed to fetch pending applications")
        return normalize_pending_review(payload)

    async def update_status(self, application_id: int, status: ReviewDecision) -> Application:
        payload = await self.send_status(application_id, status)
        return parse_review(payload, application_id)

    async def send_status(self, application_id: int, status: ReviewDecision) -> Any:
        # "reviewed" is a server-side alias of pending and is never written.
        if status not in REVIEW_DECISIONS:
            raise ValidationError(f"status must be one of {sorted(REVIEW_DECISIONS)}, got {status!r}")
        return await self.api.put(
            f"/applications/{int(application_id)}/status",
            json_body={"status": status},
            fallback="Failed to update application status",
            status_errors=_MUTATION_STATE_ERRORS,
        )

    async def accept(self, application_id: int, initial_message: str | None = None) -> Application:
        payload = await self.send_accept(application_id, initial_message)
        return parse_review(payload, application_id)

    async def send_accept(self, application_id: int, initial_message: str | None = None) -> Any:
        """Accept and open the conversation in one request; returns the raw response body."""
        body: dict[str, Any] = {"application_id": int(application_id)}
        if initial_message:
            body["initial_message"] = initial_message
        return await self.api.post(
            f"/applications/{int(application_id)}/accept",
            json_body=body,
            fallback="Failed to accept application",
            status_errors=_MUTATION_STATE_ERRORS,
        )

    async def withdraw(self, application_id: int) -> None:
        await self.api.delete(
            f"/applications/{int(application_id)}",
            fallback="Failed to withdraw application",
            status_errors={
                400: (StateError, "Only pending applications can be withdrawn"),
                409: (StateError, "Only pending applications can be withdrawn"),
            },
        )

    async def get_aggregate_info(self, *, now: datetime | None = None) -> AggregateCount:
        try:
            payload = await self.api.get("/applications/info", fallback="Failed to fetch application info")
        except NotFoundError:
            # A coach without a finished profile has nothing pending.
            logger.info("application info not found; treating as zero pending")
            return AggregateCount(pending_count=0, school_id=None, fetched_at=now or datetime.now(timezone.utc))
        return normalize_aggregate(payload or {}, now=now)


def parse_review(payload: Any, application_id: int) -> Application:
    return normalize_application(_with_id(payload, application_id))


def _with_id(payload: Any, application_id: int) -> Any:
    if not isinstance(payload, dict):
        return payload
    row = payload.get("application") if isinstance(payload.get("application"), dict) else payload
    if "id" in row or "application_id" in row:
        return row
    return {**row, "application_id": int(application_id)}
