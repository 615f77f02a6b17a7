from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from proph_client.core.errors import MissingIdentifierError, ValidationError
from proph_client.services.normalizer import (
    Normalized,
    as_flag,
    normalize_application,
    normalize_conversation,
    normalize_eligibility,
    normalize_many,
    normalize_message,
    normalize_pending_review,
    normalize_player,
    normalize_posting,
    normalize_result,
    percentage,
    pick,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_pick_prefers_snake_case_and_falls_back_to_camel_case() -> None:
    assert pick({"school_name": "snake", "schoolName": "camel"}, "school_name", "schoolName") == "snake"
    assert pick({"schoolName": "camel"}, "school_name", "schoolName") == "camel"
    assert pick({}, "school_name", "schoolName") is None


def test_as_flag_accepts_tinyint_and_booleans_only() -> None:
    assert as_flag(True) is True
    assert as_flag(1) is True
    assert as_flag(0) is False
    assert as_flag(False) is False
    assert as_flag(None) is False
    assert as_flag("1") is False


def test_percentage_prefers_explicit_value_then_derives_from_attempts() -> None:
    assert percentage(5, 10, 0.75) == 0.75
    assert percentage(5, 10) == 0.5
    assert percentage(5, 0) == 0.0
    assert percentage(None, None) == 0.0


def test_normalize_posting_reconciles_mixed_shapes() -> None:
    posting = normalize_posting(
        {
            "id": "12",
            "coachUserId": 900,
            "position_title": "Point Guard",
            "positionTitle": "ignored",
            "schoolName": "State University",
            "school_city": "Austin",
            "school_state": "TX",
            "division": "D2",
            "logo_url": "https://cdn.example/logo.png",
            "graduation_year": 0,
            "min_height": 74,
            "gpa": 3.2,
            "is_active": 0,
            "is_general": 1,
            "has_applied": 1,
            "can_delete": 0,
            "application_count": 3,
            "created_at": "2026-02-01T00:00:00Z",
        },
        now=NOW,
    )

    assert posting.id == 12
    assert posting.coach_user_id == 900
    assert posting.position == "Point Guard"
    assert posting.school.name == "State University"
    assert posting.school.location == "Austin, TX"
    assert posting.school.division == "D2"
    assert posting.school.logo == "https://cdn.example/logo.png"
    assert posting.requirements.graduation_year == 0
    assert posting.requirements.min_height_inches == 74
    assert posting.requirements.min_gpa == 3.2
    assert posting.is_active is False
    assert posting.status == "expired"
    assert posting.is_general is True
    assert posting.has_applied is True
    assert posting.can_delete is False
    assert posting.application_count == 3


def test_normalize_posting_defaults_deadline_to_thirty_days_after_creation() -> None:
    posting = normalize_posting({"id": 1, "created_at": "2026-02-01T00:00:00Z"}, now=NOW)

    assert posting.deadline == datetime(2026, 2, 1, tzinfo=timezone.utc) + timedelta(days=30)
    assert posting.can_delete is True
    assert posting.is_active is True
    assert posting.description == ""
    assert posting.school.name == "Unknown School"


def test_normalize_posting_without_id_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        normalize_posting({"position_title": "Guard"}, now=NOW)


def test_normalize_application_maps_reviewed_to_pending_and_joins_posting() -> None:
    application = normalize_application(
        {
            "id": 7,
            "posting_id": 42,
            "player_user_id": 100,
            "application_message": "Interested",
            "status": "reviewed",
            "applied_at": "2026-02-10T10:00:00Z",
            "position_title": "Point Guard",
            "school_name": "State University",
            "school_state": "TX",
            "coach_name": "Coach Carter",
        }
    )

    assert application.application_id == 7
    assert application.status == "pending"
    assert application.message == "Interested"
    assert application.posting is not None
    assert application.posting.id == 42
    assert application.posting.school.location == "TX"
    assert application.posting.coach_name == "Coach Carter"


def test_normalize_application_rejects_unknown_status_and_missing_player() -> None:
    with pytest.raises(ValidationError):
        normalize_application({"id": 1, "posting_id": 2, "player_user_id": 3, "status": "archived"})
    with pytest.raises(ValidationError):
        normalize_application({"id": 1, "posting_id": 2})


def test_normalize_result_and_many_collect_errors_instead_of_raising() -> None:
    failed = normalize_result(normalize_application, "not a dict")
    assert not failed.ok
    with pytest.raises(ValidationError):
        failed.unwrap()

    rows = [
        {"id": 1, "posting_id": 2, "player_user_id": 3},
        {"id": 2, "posting_id": 2},
    ]
    applications, errors = normalize_many(normalize_application, rows, entity="application")
    assert [application.application_id for application in applications] == [1]
    assert len(errors) == 1


def test_normalize_pending_review_keeps_zero_application_postings() -> None:
    review = normalize_pending_review(
        {
            "postings": [
                {
                    "posting": {"id": 42, "position_title": "Point Guard"},
                    "applications": [
                        {
                            "application_id": 7,
                            "player_user_id": 100,
                            "name": "Jordan",
                            "height": 74,
                            "weight": "185",
                            "graduation_year": 2027,
                            "applied_at": "2026-02-10T10:00:00Z",
                        },
                        {
                            "player_user_id": 101,
                            "name": "Sam",
                            "height": None,
                            "applied_at": "2026-02-11T10:00:00Z",
                        },
                    ],
                    "total_applications": 2,
                },
                {"posting": {"id": 43, "position_title": "Center"}, "applications": [], "total_applications": 0},
            ],
            "total_pending_applications": 2,
        },
        now=NOW,
    )

    assert review.total_pending == 2
    assert [summary.id for summary in review.zero_application_postings] == [43]
    first, second = review.by_posting[42]
    assert first.key.display_key == "7"
    assert first.player is not None
    assert first.player.height_display == "6'2\""
    assert first.player.weight == 185
    assert second.application_id is None
    assert second.key.display_key == "42-101-2026-02-11T10:00:00+00:00"
    with pytest.raises(MissingIdentifierError):
        second.key.require_id()


def test_normalize_player_prefers_nested_profile_and_derives_percentages() -> None:
    player = normalize_player(
        {
            "id": 5,
            "user_id": 100,
            "name": "Flat Name",
            "city": "Dallas",
            "profile": {"name": "Nested Name", "height": 74, "is_verified": 1, "state": "TX", "comp_player_1": "Kidd"},
            "stats": {"fgm": 5, "fga": 10, "three_pt_percentage": 0.4, "ftm": 3, "fta": 0, "spg": 1.5, "ppg": 18},
        }
    )

    assert player.user_id == 100
    assert player.profile_id == 5
    assert player.name == "Nested Name"
    assert player.height_inches == 74
    assert player.height_display == "6'2\""
    assert player.location == "Dallas, TX"
    assert player.verified is True
    assert player.comparisons == ["Kidd"]
    assert player.stats.fg_percentage == 0.5
    assert player.stats.three_pt_percentage == 0.4
    assert player.stats.ft_percentage == 0.0
    assert player.stats.steals == 1.5
    assert player.stats.ppg == 18
    assert player.stats.blocks == 0.0
    assert player.class_year == 0


def test_normalize_conversation_uses_school_logo_for_coaches() -> None:
    conversation = normalize_conversation(
        {
            "conversation_id": 50,
            "other_user_id": 900,
            "other_user_role": "coach",
            "other_user_image": "avatar.png",
            "school_logo": "logo.png",
            "school_name": "State University",
            "last_message": "Let's talk",
            "last_message_at": "2026-03-01T12:00:00Z",
            "unread_count": 1,
        },
        now=NOW,
    )

    assert conversation.id == "50"
    assert conversation.other_user.avatar == "logo.png"
    assert conversation.other_user.school == "State University"
    assert conversation.last_message.text == "Let's talk"
    assert conversation.unread_count == 1


def test_normalize_conversation_without_messages_uses_placeholder() -> None:
    conversation = normalize_conversation(
        {"conversation_id": 51, "other_user_id": 100, "other_user_role": "player", "conversation_started": "2026-02-01T00:00:00Z"},
        now=NOW,
    )

    assert conversation.other_user.name == "Player"
    assert conversation.last_message.text == "No messages yet"
    assert conversation.last_message.read is True
    assert conversation.created_at == datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_normalize_message_fills_conversation_id_and_read_flag() -> None:
    message = normalize_message(
        {"id": 3, "sender_user_id": 900, "message_text": "Hello", "sentAt": "2026-03-01T12:00:00Z", "read_at": None},
        conversation_id=50,
    )

    assert message.conversation_id == "50"
    assert message.text == "Hello"
    assert message.read is False


def test_normalize_eligibility_requires_boolean_flag() -> None:
    result = normalize_eligibility(
        {"eligible": False, "reasons": ["Deadline passed"], "posting": {"id": 1, "school": "State", "gender": "male"}}
    )
    assert result.eligible is False
    assert result.reasons == ["Deadline passed"]
    assert result.posting is not None and result.posting.gender == "male"

    with pytest.raises(ValidationError):
        normalize_eligibility({"reasons": []})


def test_normalized_unwrap_returns_value_or_raises_error() -> None:
    ok = normalize_result(normalize_application, {"id": 1, "posting_id": 2, "player_user_id": 3})
    assert ok.ok
    assert ok.unwrap().application_id == 1

    failed = Normalized(error=ValidationError("bad row"))
    with pytest.raises(ValidationError, match="bad row"):
        failed.unwrap()
