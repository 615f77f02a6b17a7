"""Application state machine and the coordination of review side effects.

States::

    (none) --submit--> PENDING --accept---> ACCEPTED   (conversation created by the same request)
                               --reject---> REJECTED
                               --withdraw-> WITHDRAWN  (the application is deleted)

ACCEPTED, REJECTED and WITHDRAWN are terminal. The coordinator refuses any
trigger from a terminal state and any second mutation while one is in flight
for the same application. It does not give exactly-once guarantees across
sessions: two clients racing the same accept are told apart only by the
backend, which answers the loser with a StateError.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Awaitable, Callable, Iterable

from opentelemetry import trace

from proph_client.core.auth import Role, Session
from proph_client.core.errors import IneligibleError, ProphClientError, StateError, ValidationError
from proph_client.core.telemetry import ROLE_ATTRIBUTE
from proph_client.schemas.applications import Application, ApplicationKey, SubmitReceipt
from proph_client.schemas.postings import Posting
from proph_client.services.applications import ApplicationGateway, parse_review
from proph_client.services.count_cache import AggregateCountCache
from proph_client.services.eligibility import EligibilityEvaluator

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class ApplicationState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Trigger(str, Enum):
    SUBMIT = "submit"
    ACCEPT = "accept"
    REJECT = "reject"
    WITHDRAW = "withdraw"


TRANSITIONS: dict[tuple[ApplicationState | None, Trigger], ApplicationState] = {
    (None, Trigger.SUBMIT): ApplicationState.PENDING,
    (ApplicationState.PENDING, Trigger.ACCEPT): ApplicationState.ACCEPTED,
    (ApplicationState.PENDING, Trigger.REJECT): ApplicationState.REJECTED,
    (ApplicationState.PENDING, Trigger.WITHDRAW): ApplicationState.WITHDRAWN,
}
TERMINAL_STATES = frozenset({ApplicationState.ACCEPTED, ApplicationState.REJECTED, ApplicationState.WITHDRAWN})


def next_state(current: ApplicationState | None, trigger: Trigger) -> ApplicationState:
    target = TRANSITIONS.get((current, trigger))
    if target is None:
        label = current.value if current is not None else "new"
        raise StateError(f"cannot {trigger.value} an application that is {label}")
    return target


@dataclass(frozen=True, slots=True)
class TransitionEvent:
    application_id: int
    posting_id: int | None
    previous: ApplicationState | None
    current: ApplicationState
    application: Application | None = None


TransitionListener = Callable[[TransitionEvent], None]
MutationTarget = Application | ApplicationKey | int


class LifecycleCoordinator:
    def __init__(
        self,
        session: Session,
        applications: ApplicationGateway,
        eligibility: EligibilityEvaluator,
        *,
        count_cache: AggregateCountCache | None = None,
    ) -> None:
        self.session = session
        self.applications = applications
        self.eligibility = eligibility
        self.count_cache = count_cache
        self.states: dict[int, ApplicationState] = {}
        self._posting_ids: dict[int, int] = {}
        self._in_flight: set[int] = set()
        self._applying: set[int] = set()
        self._applied_postings: set[int] = set()
        self._listeners: list[TransitionListener] = []

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def track(self, applications: Iterable[Application]) -> None:
        """Record states seen in a listing without ever reopening a terminal state.

        A listing requested before a local accept can arrive after it; the
        terminal state recorded locally wins over the late pending row.
        """
        for application in applications:
            if application.application_id is None:
                continue
            self._posting_ids[application.application_id] = application.posting_id
            self._applied_postings.add(application.posting_id)
            known = self.states.get(application.application_id)
            if known in TERMINAL_STATES:
                continue
            self.states[application.application_id] = ApplicationState(application.status)

    def state_of(self, application_id: int) -> ApplicationState | None:
        return self.states.get(application_id)

    def is_in_flight(self, application_id: int) -> bool:
        return application_id in self._in_flight

    def can_mutate(self, target: MutationTarget) -> bool:
        """Whether accept/reject/withdraw controls should be enabled for this row."""
        if isinstance(target, Application):
            if target.is_terminal:
                return False
            target = target.key
        if isinstance(target, ApplicationKey):
            if not target.has_id:
                return False
            application_id = target.require_id()
        else:
            application_id = target
        if application_id in self._in_flight:
            return False
        return self.states.get(application_id, ApplicationState.PENDING) not in TERMINAL_STATES

    async def apply(self, posting: Posting, message: str | None = None) -> SubmitReceipt:
        self.session.require_role(Role.PLAYER)
        if posting.has_applied or posting.id in self._applied_postings:
            # Eligibility is moot once an application exists.
            raise StateError("You have already applied to this posting")
        if posting.id in self._applying:
            raise StateError("An application to this posting is already being submitted")

        self._applying.add(posting.id)
        try:
            with tracer.start_as_current_span("applications.apply") as span:
                span.set_attribute("posting.id", posting.id)
                span.set_attribute(ROLE_ATTRIBUTE, self.session.role.value)
                result = await self.eligibility.evaluate(posting.id, posting=posting)
                span.set_attribute("eligibility.degraded", result.degraded)
                if not result.eligible:
                    reasons = "; ".join(result.reasons) or "requirements not met"
                    raise IneligibleError(f"Not eligible to apply: {reasons}", reasons=result.reasons)
                receipt = await self.applications.submit(posting.id, message)
        finally:
            self._applying.discard(posting.id)

        self._applied_postings.add(posting.id)
        self._posting_ids[receipt.id] = posting.id
        state = next_state(None, Trigger.SUBMIT)
        self.states[receipt.id] = state
        logger.info("application submitted application_id=%s posting_id=%s", receipt.id, posting.id)
        self._publish(TransitionEvent(receipt.id, posting.id, None, state))
        return receipt

    async def accept(self, target: MutationTarget, initial_message: str | None = None) -> Application:
        self.session.require_role(Role.COACH)
        application_id = self._resolve(target)
        return await self._mutate(
            application_id,
            Trigger.ACCEPT,
            lambda: self.applications.send_accept(application_id, initial_message),
            refresh_count=True,
        )

    async def reject(self, target: MutationTarget) -> Application:
        self.session.require_role(Role.COACH)
        application_id = self._resolve(target)
        return await self._mutate(
            application_id,
            Trigger.REJECT,
            lambda: self.applications.send_status(application_id, "rejected"),
            refresh_count=True,
        )

    async def withdraw(self, target: MutationTarget) -> None:
        self.session.require_role(Role.PLAYER)
        application_id = self._resolve(target)
        await self._mutate(application_id, Trigger.WITHDRAW, lambda: self._withdraw(application_id))
        posting_id = self._posting_ids.get(application_id)
        if posting_id is not None:
            self._applied_postings.discard(posting_id)

    async def _withdraw(self, application_id: int) -> None:
        await self.applications.withdraw(application_id)

    async def _mutate(
        self,
        application_id: int,
        trigger: Trigger,
        call: Callable[[], Awaitable[Any]],
        *,
        refresh_count: bool = False,
    ) -> Any:
        """Run one remote transition and record it as soon as the backend confirms it.

        The target state is recorded on any 2xx, before the response body is
        normalized: a body that fails normalization still leaves the
        application terminal, publishes the transition without the
        application, and re-raises the ValidationError.
        """
        if application_id in self._in_flight:
            raise StateError(f"a change to application {application_id} is already in progress")
        previous = self.states.get(application_id, ApplicationState.PENDING)
        target = next_state(previous, trigger)

        self._in_flight.add(application_id)
        try:
            with tracer.start_as_current_span(f"applications.{trigger.value}") as span:
                span.set_attribute("application.id", application_id)
                span.set_attribute(ROLE_ATTRIBUTE, self.session.role.value)
                payload = await call()
        except StateError:
            logger.info("backend refused %s for application_id=%s", trigger.value, application_id)
            raise
        finally:
            self._in_flight.discard(application_id)

        self.states[application_id] = target
        logger.info("application_id=%s moved %s -> %s", application_id, previous.value, target.value)
        try:
            application = parse_review(payload, application_id) if payload is not None else None
        except ValidationError:
            logger.warning("application_id=%s is %s but the response body was malformed", application_id, target.value)
            event = TransitionEvent(application_id, self._posting_ids.get(application_id), previous, target)
            await self._settle(event, refresh_count)
            raise

        posting_id = application.posting_id if application is not None else self._posting_ids.get(application_id)
        await self._settle(TransitionEvent(application_id, posting_id, previous, target, application), refresh_count)
        return application

    async def _settle(self, event: TransitionEvent, refresh_count: bool) -> None:
        self._publish(event)
        if refresh_count:
            await self._refresh_count()

    def _resolve(self, target: MutationTarget) -> int:
        if isinstance(target, Application):
            application_id = target.key.require_id()
            self._posting_ids[application_id] = target.posting_id
            if target.is_terminal and application_id not in self.states:
                self.states[application_id] = ApplicationState(target.status)
            return application_id
        if isinstance(target, ApplicationKey):
            return target.require_id()
        return int(target)

    async def _refresh_count(self) -> None:
        if self.count_cache is None:
            return
        try:
            await self.count_cache.invalidate_and_refresh()
        except ProphClientError as exc:
            # The review itself succeeded; the badge catches up on its next refresh.
            logger.warning("pending count refresh after review failed: %s", exc.message)

    def _publish(self, event: TransitionEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
