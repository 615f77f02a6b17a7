from __future__ import annotations

from dataclasses import dataclass

import httpx

from proph_client.core.auth import Session
from proph_client.core.config import Settings, get_settings
from proph_client.core.telemetry import TelemetryRuntime, instrument_http_client
from proph_client.services.applications import ApplicationGateway
from proph_client.services.count_cache import AggregateCountCache
from proph_client.services.eligibility import EligibilityEvaluator
from proph_client.services.http import ApiClient
from proph_client.services.lifecycle import LifecycleCoordinator
from proph_client.services.messages import MessageGateway
from proph_client.services.postings import PostingGateway
from proph_client.services.store import KeyValueStore, build_store


@dataclass(slots=True)
class ProphClient:
    session: Session
    api: ApiClient
    applications: ApplicationGateway
    postings: PostingGateway
    messages: MessageGateway
    eligibility: EligibilityEvaluator
    pending_count: AggregateCountCache
    lifecycle: LifecycleCoordinator

    def logout(self) -> None:
        self.pending_count.clear()
        self.api.token = None


def build_client(
    session: Session,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    store: KeyValueStore | None = None,
    telemetry: TelemetryRuntime | None = None,
) -> ProphClient:
    settings = settings or get_settings()
    if telemetry is not None and http_client is not None:
        instrument_http_client(telemetry, http_client)
    api = ApiClient.from_settings(settings, token=session.token, client=http_client)
    applications = ApplicationGateway(api)
    postings = PostingGateway(api)
    eligibility = EligibilityEvaluator.from_settings(postings, settings)
    pending_count = AggregateCountCache.from_settings(
        applications,
        store if store is not None else build_store(settings.storage_path),
        settings,
        namespace=session.storage_namespace,
    )
    return ProphClient(
        session=session,
        api=api,
        applications=applications,
        postings=postings,
        messages=MessageGateway(api),
        eligibility=eligibility,
        pending_count=pending_count,
        lifecycle=LifecycleCoordinator(session, applications, eligibility, count_cache=pending_count),
    )
