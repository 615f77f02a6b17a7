"""Reconcile the backend's heterogeneous payloads into canonical models.

The backend returns the same entity in several shapes: flat SQL joins, rows
nested under ``profile``/``stats``, snake_case or camelCase keys, tinyint
booleans. Every ``normalize_*`` function below validates one raw payload into a
single canonical pydantic model or raises :class:`ValidationError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Callable, Generic, Mapping, TypeVar, cast

import pydantic

from proph_client.core.errors import ValidationError
from proph_client.schemas.applications import AggregateCount, Application, PendingReview, SubmitReceipt
from proph_client.schemas.messages import Conversation, Message, Participant
from proph_client.schemas.players import ApplicantSummary, Player, PlayerStats
from proph_client.schemas.postings import (
    EligibilityPostingSnapshot,
    EligibilityResult,
    Posting,
    PostingRequirements,
    PostingSummary,
    School,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DEADLINE_DAYS = 30
_STATUS_ALIASES = {
    "pending": "pending",
    "reviewed": "pending",
    "accepted": "accepted",
    "rejected": "rejected",
}


@dataclass(frozen=True, slots=True)
class Normalized(Generic[T]):
    value: T | None = None
    error: ValidationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return cast(T, self.value)


def normalize_result(normalize: Callable[[Any], T], raw: Any) -> Normalized[T]:
    try:
        return Normalized(value=normalize(raw))
    except ValidationError as exc:
        return Normalized(error=exc)


def normalize_many(normalize: Callable[[Any], T], rows: Any, *, entity: str) -> tuple[list[T], list[ValidationError]]:
    """Normalize each row, dropping and logging the ones that fail validation."""
    if not isinstance(rows, list):
        raise ValidationError(f"expected a list of {entity} rows, got {type(rows).__name__}")
    values: list[T] = []
    errors: list[ValidationError] = []
    for index, row in enumerate(rows):
        result = normalize_result(normalize, row)
        if result.error is None:
            values.append(result.unwrap())
            continue
        logger.warning("dropping malformed %s row index=%s: %s", entity, index, result.error.message)
        errors.append(result.error)
    return values, errors


# -- field coercion ---------------------------------------------------------


def pick(raw: Mapping[str, Any], snake: str, camel: str | None = None) -> Any:
    """Return the snake_case value when present, otherwise the camelCase one."""
    value = raw.get(snake)
    if value is not None:
        return value
    if camel is not None:
        return raw.get(camel)
    return None


def first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def as_flag(value: Any) -> bool:
    """tinyint(1) columns arrive as 0/1 or as booleans."""
    return value is True or (not isinstance(value, bool) and value == 1)


def as_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def as_id_text(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    return text or None


def as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def percentage(makes: Any, attempts: Any, explicit: Any = None) -> float:
    explicit_value = as_float(explicit)
    if explicit_value is not None:
        return explicit_value
    makes_value = as_float(makes)
    attempts_value = as_float(attempts)
    if makes_value is not None and attempts_value is not None and attempts_value > 0:
        return makes_value / attempts_value
    return 0.0


def normalize_status(value: Any) -> str:
    if value is None:
        return "pending"
    status = _STATUS_ALIASES.get(str(value).strip().lower())
    if status is None:
        raise ValidationError(f"unknown application status: {value!r}")
    return status


def _as_mapping(raw: Any, entity: str) -> Mapping[str, Any]:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"{entity} payload must be an object, got {type(raw).__name__}")
    return raw


def _build(model: type[T], entity: str, **fields: Any) -> T:
    try:
        return model(**fields)  # type: ignore[call-arg]
    except pydantic.ValidationError as exc:
        raise ValidationError(f"invalid {entity} payload: {exc.errors()[0]['loc']} {exc.errors()[0]['msg']}") from exc


# -- postings ---------------------------------------------------------------


def _school_location(raw: Mapping[str, Any]) -> str:
    city = as_text(pick(raw, "school_city", "schoolCity"))
    state = as_text(pick(raw, "school_state", "schoolState"))
    if city and state:
        return f"{city}, {state}"
    return state or as_text(raw.get("state")) or ""


def normalize_school(raw: Mapping[str, Any]) -> School:
    school_id = pick(raw, "school_id", "schoolId")
    return School(
        id=str(school_id) if school_id is not None else None,
        name=as_text(pick(raw, "school_name", "schoolName")) or as_text(raw.get("school")) or "Unknown School",
        logo=as_text(pick(raw, "school_logo", "schoolLogo")) or as_text(pick(raw, "logo_url", "logoUrl")) or "",
        division=as_text(pick(raw, "school_division", "schoolDivision")) or as_text(raw.get("division")) or "Unknown",
        location=_school_location(raw),
        conference=as_text(pick(raw, "school_conference", "schoolConference")) or as_text(raw.get("conference")),
    )


def normalize_requirements(raw: Mapping[str, Any]) -> PostingRequirements:
    # graduation_year may legitimately be 0 ("any eligibility").
    graduation_year = first_present(
        as_int(pick(raw, "graduation_year", "graduationYear")),
        as_int(pick(raw, "graduation_year_min", "graduationYearMin")),
    )
    min_height = as_int(first_present(pick(raw, "min_height", "minHeight"), raw.get("height")))
    return PostingRequirements(
        min_gpa=as_float(raw.get("gpa")) or None,
        graduation_year=graduation_year,
        min_height_inches=min_height or None,
    )


def normalize_posting(raw: Any, *, now: datetime | None = None) -> Posting:
    data = _as_mapping(raw, "posting")
    current = now or datetime.now(timezone.utc)
    created_at = parse_timestamp(pick(data, "created_at", "createdAt")) or current
    deadline = parse_timestamp(
        first_present(pick(data, "application_deadline", "applicationDeadline"), data.get("deadline"))
    ) or created_at + timedelta(days=DEFAULT_DEADLINE_DAYS)
    can_delete = pick(data, "can_delete", "canDelete")

    return _build(
        Posting,
        "posting",
        id=as_int(data.get("id")),
        coach_user_id=as_int(pick(data, "coach_user_id", "coachUserId")),
        school=normalize_school(data),
        position=as_text(pick(data, "position_title", "positionTitle")) or "Position",
        description=as_text(pick(data, "position_description", "positionDescription"))
        or as_text(data.get("description"))
        or "",
        requirements=normalize_requirements(data),
        deadline=deadline,
        is_active=as_flag(first_present(pick(data, "is_active", "isActive"), True)),
        is_general=as_flag(pick(data, "is_general", "isGeneral")),
        has_applied=as_flag(pick(data, "has_applied", "hasApplied")),
        application_count=as_int(pick(data, "application_count", "applicationCount")) or 0,
        match_score=as_float(pick(data, "match_score", "matchScore")),
        can_delete=can_delete is None or can_delete != 0,
        coach_name=as_text(pick(data, "coach_name", "coachName")) or "Coach",
        created_at=created_at,
    )


def normalize_posting_summary(raw: Any) -> PostingSummary:
    data = _as_mapping(raw, "posting summary")
    posting = data.get("posting") if isinstance(data.get("posting"), Mapping) else data
    return _build(
        PostingSummary,
        "posting summary",
        id=as_int(posting.get("id")),
        position=as_text(pick(posting, "position_title", "positionTitle")) or "Position",
        total_applications=as_int(pick(data, "total_applications", "totalApplications")) or 0,
    )


def normalize_eligibility(raw: Any) -> EligibilityResult:
    data = _as_mapping(raw, "eligibility")
    eligible = data.get("eligible")
    if not isinstance(eligible, bool) and eligible not in (0, 1):
        raise ValidationError("eligibility payload is missing a boolean 'eligible'")
    reasons = data.get("reasons") or []
    if not isinstance(reasons, list):
        raise ValidationError("eligibility 'reasons' must be a list")
    snapshot_raw = data.get("posting")
    snapshot = None
    if isinstance(snapshot_raw, Mapping):
        snapshot = EligibilityPostingSnapshot(
            id=as_int(snapshot_raw.get("id")),
            school=as_text(snapshot_raw.get("school")) or "",
            division=as_text(snapshot_raw.get("division")) or "",
            gender=as_text(snapshot_raw.get("gender")) or "",
        )
    return EligibilityResult(
        eligible=as_flag(eligible),
        reasons=[str(reason) for reason in reasons],
        posting=snapshot,
    )


# -- applications -----------------------------------------------------------


def _joined_posting(data: Mapping[str, Any], posting_id: int | None, applied_at: datetime) -> Posting | None:
    if posting_id is None:
        return None
    if not any(key in data for key in ("position_title", "positionTitle", "school_name", "schoolName")):
        return None
    joined = dict(data)
    joined["id"] = posting_id
    joined.setdefault("created_at", applied_at)
    joined.pop("can_delete", None)
    joined.pop("has_applied", None)
    return normalize_posting(joined)


def normalize_application(raw: Any, *, now: datetime | None = None) -> Application:
    data = _as_mapping(raw, "application")
    if isinstance(data.get("application"), Mapping):
        data = data["application"]
    current = now or datetime.now(timezone.utc)
    applied_at = parse_timestamp(pick(data, "applied_at", "appliedAt")) or current
    posting_id = as_int(pick(data, "posting_id", "postingId"))
    application_id = as_int(first_present(pick(data, "application_id", "applicationId"), data.get("id")))

    return _build(
        Application,
        "application",
        application_id=application_id,
        posting_id=posting_id,
        player_user_id=as_int(pick(data, "player_user_id", "playerUserId")),
        message=as_text(pick(data, "application_message", "applicationMessage")),
        status=normalize_status(data.get("status")),
        applied_at=applied_at,
        reviewed_at=parse_timestamp(pick(data, "reviewed_at", "reviewedAt")),
        reviewed_by_coach_id=as_int(pick(data, "reviewed_by_coach_id", "reviewedByCoachId")),
        posting=_joined_posting(data, posting_id, applied_at),
    )


def normalize_pending_item(posting_id: int, raw: Any, *, now: datetime | None = None) -> Application:
    data = _as_mapping(raw, "pending application")
    current = now or datetime.now(timezone.utc)
    applied_at = parse_timestamp(pick(data, "applied_at", "appliedAt")) or current
    player_user_id = as_int(pick(data, "player_user_id", "playerUserId"))
    applicant = None
    if player_user_id is not None:
        applicant = ApplicantSummary(
            user_id=player_user_id,
            name=as_text(data.get("name")) or "Unknown Player",
            photo=as_text(pick(data, "profile_image_url", "profileImageUrl")) or "",
            height_inches=as_int(data.get("height")) or 0,
            weight=as_int(data.get("weight")),
            class_year=as_int(pick(data, "graduation_year", "graduationYear")) or 0,
        )
    return _build(
        Application,
        "pending application",
        application_id=as_int(pick(data, "application_id", "applicationId")),
        posting_id=posting_id,
        player_user_id=player_user_id,
        message=as_text(pick(data, "application_message", "applicationMessage")),
        status="pending",
        applied_at=applied_at,
        player=applicant,
    )


def normalize_pending_review(raw: Any, *, now: datetime | None = None) -> PendingReview:
    data = _as_mapping(raw, "pending applications")
    groups = data.get("postings") or []
    if not isinstance(groups, list):
        raise ValidationError("pending applications 'postings' must be a list")

    review = PendingReview()
    for group in groups:
        summary = normalize_posting_summary(group)
        review.postings[summary.id] = summary
        items = group.get("applications") or []
        if not items:
            review.zero_application_postings.append(summary)
            continue
        applications, _ = normalize_many(
            lambda item: normalize_pending_item(summary.id, item, now=now),
            items,
            entity="pending application",
        )
        review.by_posting[summary.id] = applications

    total = as_int(pick(data, "total_pending_applications", "totalPendingApplications"))
    review.total_pending = total if total is not None else len(review.applications())
    return review


def normalize_submit_receipt(raw: Any) -> SubmitReceipt:
    data = _as_mapping(raw, "submit receipt")
    return _build(SubmitReceipt, "submit receipt", id=as_int(data.get("id")), message=as_text(data.get("message")) or "")


def normalize_aggregate(raw: Any, *, now: datetime | None = None) -> AggregateCount:
    data = _as_mapping(raw, "application info")
    return AggregateCount(
        pending_count=as_int(pick(data, "pending_count", "pendingCount")) or 0,
        school_id=as_int(pick(data, "school_id", "schoolId")),
        fetched_at=now or datetime.now(timezone.utc),
    )


# -- players ----------------------------------------------------------------


def normalize_player(raw: Any) -> Player:
    data = _as_mapping(raw, "player")
    nested = data.get("profile")
    profile: Mapping[str, Any] = nested if isinstance(nested, Mapping) else {}
    stats_raw = data.get("stats")
    stats: Mapping[str, Any] = stats_raw if isinstance(stats_raw, Mapping) else data

    def field(snake: str, camel: str | None = None) -> Any:
        # Nested profile wins over the flat duplicate.
        return first_present(pick(profile, snake, camel), pick(data, snake, camel))

    comparisons = [
        text for text in (as_text(field(f"comp_player_{n}", f"compPlayer{n}")) for n in (1, 2, 3)) if text
    ]
    city = as_text(field("city"))
    state = as_text(field("state"))
    location = f"{city}, {state}" if city and state else city or state or "Unknown"
    user_id = as_int(first_present(pick(profile, "user_id", "userId"), pick(data, "user_id", "userId"), data.get("id")))

    return _build(
        Player,
        "player",
        user_id=user_id,
        profile_id=as_int(first_present(data.get("id"), profile.get("id"))),
        name=as_text(field("name")) or "Unknown Player",
        position=as_text(field("playstyle")) or as_text(field("clop")) or "Unknown",
        photo=as_text(field("profile_image_url", "profileImageUrl")) or "",
        school=as_text(field("school")) or "Unknown School",
        height_inches=as_int(field("height")) or 0,
        weight=as_int(field("weight")),
        age=as_int(field("age")) or 0,
        location=location,
        class_year=as_int(field("graduation_year", "graduationYear")) or 0,
        level=as_text(field("projected_level", "projectedLevel")) or "Unknown",
        comparisons=comparisons,
        stats=PlayerStats(
            ppg=as_float(stats.get("ppg")) or 0.0,
            rpg=as_float(stats.get("rpg")) or 0.0,
            apg=as_float(stats.get("apg")) or 0.0,
            fg_percentage=percentage(
                stats.get("fgm"), stats.get("fga"), pick(stats, "fg_percentage", "fgPercentage")
            ),
            three_pt_percentage=percentage(
                stats.get("threepm"), stats.get("threepa"), pick(stats, "three_pt_percentage", "threePtPercentage")
            ),
            ft_percentage=percentage(stats.get("ftm"), stats.get("fta"), pick(stats, "ft_percentage", "ftPercentage")),
            steals=as_float(first_present(stats.get("spg"), stats.get("steals"))) or 0.0,
            blocks=as_float(first_present(stats.get("bpg"), stats.get("blocks"))) or 0.0,
        ),
        verified=as_flag(field("is_verified", "isVerified")),
        gpa=as_float(field("gpa")),
        sat=as_int(field("sat")),
        act=as_int(field("act")),
        email=as_text(first_present(data.get("email"), profile.get("email"))),
        phone_number=as_text(field("phone_number", "phoneNumber")),
    )


# -- messages ---------------------------------------------------------------


def normalize_message(raw: Any, *, conversation_id: int | str | None = None, now: datetime | None = None) -> Message:
    data = _as_mapping(raw, "message")
    timestamp = parse_timestamp(first_present(pick(data, "sent_at", "sentAt"), data.get("timestamp")))
    resolved_conversation = first_present(pick(data, "conversation_id", "conversationId"), conversation_id)
    return _build(
        Message,
        "message",
        id=as_id_text(data.get("id")),
        conversation_id=as_id_text(resolved_conversation),
        sender_id=as_id_text(pick(data, "sender_user_id", "senderUserId")),
        text=first_present(pick(data, "message_text", "messageText"), data.get("text"), ""),
        timestamp=timestamp or now or datetime.now(timezone.utc),
        read=pick(data, "read_at", "readAt") is not None,
    )


def normalize_conversation(raw: Any, *, now: datetime | None = None) -> Conversation:
    data = _as_mapping(raw, "conversation")
    current = now or datetime.now(timezone.utc)
    conversation_id = first_present(pick(data, "conversation_id", "conversationId"), data.get("id"))
    if conversation_id is None:
        raise ValidationError("conversation payload has no conversation_id")
    role = as_text(pick(data, "other_user_role", "otherUserRole")) or "player"
    other_user_id = as_id_text(pick(data, "other_user_id", "otherUserId"))
    if other_user_id is None:
        raise ValidationError("conversation payload has no other_user_id")
    is_coach = role == "coach"
    avatar = as_text(pick(data, "other_user_image", "otherUserImage")) or ""
    school_logo = as_text(pick(data, "school_logo", "schoolLogo"))
    last_message_at = parse_timestamp(pick(data, "last_message_at", "lastMessageAt"))
    started_at = parse_timestamp(pick(data, "conversation_started", "conversationStarted"))
    last_text = as_text(pick(data, "last_message", "lastMessage"))

    last_message = Message(
        id="last" if last_text else "empty",
        conversation_id=str(conversation_id),
        sender_id=other_user_id,
        text=last_text or "No messages yet",
        timestamp=last_message_at or (started_at if not last_text else None) or current,
        read=not last_text,
    )
    try:
        other_user = Participant(
            id=other_user_id,
            name=as_text(pick(data, "other_user_name", "otherUserName")) or ("Coach" if is_coach else "Player"),
            avatar=school_logo if is_coach and school_logo else avatar,
            role=role,
            school=as_text(pick(data, "school_name", "schoolName")) if is_coach else None,
        )
    except pydantic.ValidationError as exc:
        raise ValidationError(f"invalid conversation participant: {exc.errors()[0]['msg']}") from exc

    return Conversation(
        id=str(conversation_id),
        other_user=other_user,
        last_message=last_message,
        unread_count=as_int(pick(data, "unread_count", "unreadCount")) or 0,
        created_at=last_message_at or started_at or current,
    )
