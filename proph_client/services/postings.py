from __future__ import annotations

from typing import Any, Mapping

from proph_client.core.errors import NotFoundError, ValidationError
from proph_client.schemas.postings import (
    EDITABLE_FIELDS,
    EligibilityResult,
    Posting,
    PostingDeleteReceipt,
    PostingUpdateReceipt,
)
from proph_client.services.http import ApiClient
from proph_client.services.normalizer import as_int, as_text, normalize_eligibility, normalize_many, normalize_posting

DESCRIPTION_FIELDS = frozenset({"position_description", "description"})


class PostingGateway:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get(self, posting_id: int) -> Posting:
        payload = await self.api.get(f"/postings/{int(posting_id)}", fallback="Failed to fetch posting")
        row = payload.get("posting") if isinstance(payload, dict) and "posting" in payload else payload
        return normalize_posting(row)

    async def list_mine(self) -> list[Posting]:
        payload = await self.api.get("/recruitment/my-postings", fallback="Failed to fetch my postings")
        rows = payload.get("postings") if isinstance(payload, dict) else payload
        postings, _ = normalize_many(normalize_posting, rows or [], entity="posting")
        return postings

    async def update(
        self,
        posting_id: int,
        changes: Mapping[str, Any],
        *,
        current: Posting | None = None,
    ) -> PostingUpdateReceipt:
        check_posting_edit(changes, current)
        payload = await self.api.put(
            f"/postings/{int(posting_id)}",
            json_body=dict(changes),
            fallback="Failed to update posting",
        )
        data = payload if isinstance(payload, dict) else {}
        return PostingUpdateReceipt(id=data.get("id", int(posting_id)), message=as_text(data.get("message")) or "")

    async def delete(self, posting_id: int) -> PostingDeleteReceipt:
        payload = await self.api.delete(f"/postings/{int(posting_id)}", fallback="Failed to delete posting")
        data = payload if isinstance(payload, dict) else {}
        return PostingDeleteReceipt(
            message=as_text(data.get("message")) or "",
            deleted_applications=as_int(data.get("deleted_applications")) or 0,
        )

    async def check_eligibility(self, posting_id: int) -> EligibilityResult:
        """Ask the remote gate whether the current player may apply.

        404 and 400 mean the posting (or the player's profile) could not be
        identified and are raised as NotFoundError / ValidationError.
        """
        payload = await self.api.get(
            f"/postings/{int(posting_id)}/can-apply",
            fallback="Failed to check eligibility",
            status_errors={
                404: (NotFoundError, "Posting or profile not found"),
                400: (ValidationError, "Invalid posting ID"),
            },
        )
        return normalize_eligibility(payload)


def check_posting_edit(changes: Mapping[str, Any], current: Posting | None) -> None:
    if not changes:
        raise ValidationError("no posting fields to update")
    unknown = set(changes) - EDITABLE_FIELDS - DESCRIPTION_FIELDS
    if unknown:
        raise ValidationError(f"fields are not editable: {sorted(unknown)}")
    if current is not None and current.is_general:
        restricted = set(changes) - DESCRIPTION_FIELDS
        if restricted:
            raise ValidationError(f"general-interest postings only allow description edits, got {sorted(restricted)}")
