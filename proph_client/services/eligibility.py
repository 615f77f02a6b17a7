from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Protocol

from proph_client.core.config import Settings
from proph_client.core.errors import ProphClientError
from proph_client.schemas.postings import EligibilityResult, Posting
from proph_client.services.postings import PostingGateway

logger = logging.getLogger(__name__)

# 404 / 400 mean the posting could not be identified; those are never failed open.
IDENTIFICATION_STATUS_CODES = frozenset({400, 404})


class EligibilityPolicy(Protocol):
    name: str

    def on_failure(self, posting_id: int, exc: ProphClientError) -> EligibilityResult: ...


class OptimisticEligibility:
    """Fail-open: an eligibility check that cannot complete permits the apply.

    The backend re-checks eligibility authoritatively when the application is
    submitted, so a degraded result can at worst surface the refusal one step
    later. Disable with ``PROPH_ELIGIBILITY_FAIL_OPEN=false``.
    """

    name = "optimistic"

    def on_failure(self, posting_id: int, exc: ProphClientError) -> EligibilityResult:
        logger.warning("eligibility check failed for posting_id=%s, failing open: %s", posting_id, exc.message)
        return EligibilityResult(eligible=True, reasons=[], posting=None, degraded=True)


class StrictEligibility:
    name = "strict"

    def on_failure(self, posting_id: int, exc: ProphClientError) -> EligibilityResult:
        raise exc


class EligibilityEvaluator:
    def __init__(
        self,
        postings: PostingGateway,
        *,
        policy: EligibilityPolicy | None = None,
        max_concurrency: int = 4,
    ) -> None:
        self.postings = postings
        self.policy = policy or OptimisticEligibility()
        self.max_concurrency = max(1, max_concurrency)

    @classmethod
    def from_settings(cls, postings: PostingGateway, settings: Settings) -> "EligibilityEvaluator":
        policy: EligibilityPolicy = OptimisticEligibility() if settings.eligibility_fail_open else StrictEligibility()
        return cls(postings, policy=policy, max_concurrency=settings.eligibility_max_concurrency)

    async def evaluate(self, posting_id: int, *, posting: Posting | None = None) -> EligibilityResult:
        if posting is not None and posting.is_general:
            return EligibilityResult(eligible=True, reasons=[], posting=None)
        try:
            return await self.postings.check_eligibility(posting_id)
        except ProphClientError as exc:
            if exc.status_code in IDENTIFICATION_STATUS_CODES:
                raise
            return self.policy.on_failure(posting_id, exc)

    async def evaluate_many(self, postings: Iterable[Posting]) -> dict[int, EligibilityResult]:
        """Evaluate a page of postings with at most ``max_concurrency`` checks in flight.

        Postings the player already applied to are skipped.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        pending = [posting for posting in postings if not posting.has_applied]

        async def run(posting: Posting) -> tuple[int, EligibilityResult]:
            async with semaphore:
                return posting.id, await self.evaluate(posting.id, posting=posting)

        results = await asyncio.gather(*(run(posting) for posting in pending))
        return dict(results)
