from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from proph_client.core.errors import NotFoundError, ValidationError
from proph_client.services.http import ApiClient
from proph_client.services.normalizer import normalize_posting
from proph_client.services.postings import PostingGateway, check_posting_edit


def _gateway(handler: Any) -> tuple[PostingGateway, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PostingGateway(ApiClient("http://proph.test/api", token="coach-token", client=http)), http


def test_list_mine_drops_malformed_rows() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/recruitment/my-postings"
        rows = [
            {"id": 1, "position_title": "Point Guard", "application_count": 2},
            {"position_title": "No id"},
        ]
        return httpx.Response(status_code=200, json={"postings": rows}, request=request)

    async def run():
        gateway, http = _gateway(handler)
        async with http:
            return await gateway.list_mine()

    [posting] = asyncio.run(run())
    assert posting.id == 1
    assert posting.application_count == 2


def test_update_sends_only_the_given_fields() -> None:
    captured: dict[str, Any] = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["body"] = json.loads(request.content)
        return httpx.Response(status_code=200, json={"id": 5, "message": "Posting updated"}, request=request)

    async def run():
        gateway, http = _gateway(handler)
        async with http:
            return await gateway.update(5, {"gpa": 3.0, "position_description": "Updated"})

    receipt = asyncio.run(run())
    assert captured == {"method": "PUT", "body": {"gpa": 3.0, "position_description": "Updated"}}
    assert receipt.id == 5
    assert receipt.message == "Posting updated"


def test_general_postings_only_allow_description_edits() -> None:
    general = normalize_posting({"id": 9, "is_general": 1})
    regular = normalize_posting({"id": 10})

    check_posting_edit({"position_description": "Open tryouts"}, general)
    check_posting_edit({"min_height": 74}, regular)
    with pytest.raises(ValidationError):
        check_posting_edit({"min_height": 74}, general)
    with pytest.raises(ValidationError):
        check_posting_edit({"coach_user_id": 1}, regular)
    with pytest.raises(ValidationError):
        check_posting_edit({}, regular)


def test_delete_reports_cascaded_applications() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        return httpx.Response(
            status_code=200,
            json={"message": "Posting deleted", "deleted_applications": 4},
            request=request,
        )

    async def run():
        gateway, http = _gateway(handler)
        async with http:
            return await gateway.delete(3)

    receipt = asyncio.run(run())
    assert receipt.deleted_applications == 4


def test_check_eligibility_uses_identification_fallbacks() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        status = 404 if request.url.path.startswith("/api/postings/1/") else 400
        return httpx.Response(status_code=status, request=request)

    async def run() -> tuple[NotFoundError, ValidationError]:
        gateway, http = _gateway(handler)
        async with http:
            with pytest.raises(NotFoundError) as missing:
                await gateway.check_eligibility(1)
            with pytest.raises(ValidationError) as invalid:
                await gateway.check_eligibility(2)
            return missing.value, invalid.value

    missing, invalid = asyncio.run(run())
    assert missing.message == "Posting or profile not found"
    assert invalid.message == "Invalid posting ID"
