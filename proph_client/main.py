from __future__ import annotations

import asyncio
import logging
import random

from opentelemetry import trace

from proph_client.client import build_client
from proph_client.core.auth import Session, parse_role
from proph_client.core.config import Settings, get_settings
from proph_client.core.errors import ProphClientError
from proph_client.core.telemetry import (
    configure_client_logging,
    setup_client_telemetry,
    shutdown_client_telemetry,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def session_from_settings(settings: Settings) -> Session:
    if not settings.session_token or settings.session_user_id is None:
        raise SystemExit("PROPH_SESSION_TOKEN and PROPH_SESSION_USER_ID must be set")
    return Session(
        token=settings.session_token,
        user_id=settings.session_user_id,
        role=parse_role(settings.session_role),
    )


async def run_badge_refresher(*, max_cycles: int | None = None) -> None:
    """Keep the pending-applications badge warm for a signed-in coach."""
    settings = get_settings()
    configure_client_logging()
    session = session_from_settings(settings)
    telemetry_runtime = setup_client_telemetry(settings, session=session)
    client = build_client(session, settings=settings, telemetry=telemetry_runtime)

    backoff = settings.badge_poll_interval_seconds
    cycles = 0
    last_count: int | None = None
    try:
        while max_cycles is None or cycles < max_cycles:
            cycles += 1
            try:
                with tracer.start_as_current_span("badge.poll_cycle"):
                    info = await client.pending_count.get()
                    if info.pending_count != last_count:
                        logger.info("pending applications: %s (school_id=%s)", info.pending_count, info.school_id)
                        last_count = info.pending_count
                backoff = settings.badge_poll_interval_seconds
                await asyncio.sleep(settings.badge_poll_interval_seconds)
            except ProphClientError as exc:
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.warning("badge refresh failed: %s; retry in %.1fs", exc.message, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
        await client.pending_count.wait_for_refresh()
    finally:
        shutdown_client_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(run_badge_refresher())
