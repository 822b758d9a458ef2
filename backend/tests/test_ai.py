# tests/test_ai.py — AI brief generation against a mocked chat-completions endpoint
import json

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient

from ai_brief import BriefGenerator, extract_json, get_brief_generator, parse_brief
from errors import UpstreamFailure
from main import app
from tests.conftest import get_auth_headers, make_item

BRIEF = {
    "title": "Contact form",
    "summary": "Add a contact form to the homepage.",
    "explanation": "Visitors need a way to reach the agency.",
    "implementation_notes": "Use the form plugin.",
    "task_type": "dev",
    "role": "dev",
    "role_reason": "Needs a plugin install.",
    "steps": ["Install the form plugin", "  ", "Embed the form on the homepage"],
    "acceptance_criteria": ["Form sends email"],
    "questions": [],
}


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeProvider:
    """Records requests and answers with a canned response"""

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload if payload is not None else _completion(json.dumps(BRIEF))
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)


@pytest_asyncio.fixture
async def provider():
    fake = FakeProvider()
    app.dependency_overrides[get_brief_generator] = lambda: BriefGenerator(
        api_url="https://llm.test/v1/chat/completions",
        model="test-model",
        transport=httpx.MockTransport(fake),
    )
    yield fake
    app.dependency_overrides.pop(get_brief_generator, None)


# ============================================================
# PARSING
# ============================================================

def test_extract_json_from_chatty_reply():
    raw = 'Sure! Here it is:\n```json\n{"summary": "s"}\n```'
    assert extract_json(raw) == '{"summary": "s"}'
    with pytest.raises(UpstreamFailure):
        extract_json("no braces here")


def test_parse_brief_normalizes_fields():
    brief = parse_brief(json.dumps({**BRIEF, "task_type": "", "questions": "not a list"}))
    assert brief["steps"] == ["Install the form plugin", "Embed the form on the homepage"]
    assert brief["task_type"] == "other"
    assert brief["questions"] == []


@pytest.mark.parametrize("raw", [
    '{"summary": "s", "explanation": "e"}',
    '{"summary": "s", "explanation": "e", "role": "   "}',
    '{"summary": "s", explanation}',
    "[1, 2]",
])
def test_parse_brief_rejects_unusable_replies(raw):
    with pytest.raises(UpstreamFailure):
        parse_brief(raw)


# ============================================================
# ENDPOINT
# ============================================================

@pytest.mark.asyncio
async def test_brief_with_service_key(client: AsyncClient, provider, member_user, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk_service_key_123")
    res = await client.post(
        "/api/v1/ai/brief",
        json={"input_text": "Client wants a contact form", "context": "WordPress site"},
        headers=get_auth_headers(member_user),
    )
    assert res.status_code == 200
    data = res.json()
    assert data["summary"] == BRIEF["summary"]
    assert data["applied_item_id"] is None

    sent = provider.requests[0]
    assert sent.headers["Authorization"] == "Bearer gsk_service_key_123"
    body = json.loads(sent.content)
    assert body["model"] == "test-model"
    assert "WordPress site" in body["messages"][1]["content"]


@pytest.mark.asyncio
async def test_user_key_wins(client: AsyncClient, provider, member_user, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk_service_key_123")
    headers = get_auth_headers(member_user)
    await client.put("/api/v1/auth/ai-key", json={"api_key": "gsk_personal_key_456"}, headers=headers)

    res = await client.post("/api/v1/ai/brief", json={"input_text": "Client wants a contact form"}, headers=headers)
    assert res.status_code == 200
    assert provider.requests[0].headers["Authorization"] == "Bearer gsk_personal_key_456"


@pytest.mark.asyncio
async def test_brief_without_any_key(client: AsyncClient, provider, member_user):
    res = await client.post(
        "/api/v1/ai/brief", json={"input_text": "Client wants a contact form"}, headers=get_auth_headers(member_user),
    )
    assert res.status_code == 400
    assert provider.requests == []


@pytest.mark.asyncio
async def test_short_input_rejected(client: AsyncClient, provider, member_user, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk_service_key_123")
    res = await client.post(
        "/api/v1/ai/brief", json={"input_text": "   tiny   "}, headers=get_auth_headers(member_user),
    )
    assert res.status_code == 422


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code, payload", [
    (500, {"error": "boom"}),
    (200, {"choices": []}),
    (200, _completion("I cannot help with that.")),
    (200, _completion(json.dumps({"summary": "only a summary"}))),
])
async def test_provider_failures_are_upstream_errors(
    client: AsyncClient, provider, member_user, monkeypatch, status_code, payload,
):
    monkeypatch.setenv("GROQ_API_KEY", "gsk_service_key_123")
    provider.status_code = status_code
    provider.payload = payload
    res = await client.post(
        "/api/v1/ai/brief", json={"input_text": "Client wants a contact form"}, headers=get_auth_headers(member_user),
    )
    assert res.status_code == 502
    assert res.json()["error"] == "upstream_failure"


@pytest.mark.asyncio
async def test_apply_brief_to_item(client: AsyncClient, db_session, board, group, member_user, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk_service_key_123")
    fake = FakeProvider()
    app.dependency_overrides[get_brief_generator] = lambda: BriefGenerator(transport=httpx.MockTransport(fake))
    try:
        item = await make_item(db_session, group, "Contact form")
        headers = get_auth_headers(member_user)
        await client.post("/api/v1/checklists", json={"item_id": item.id, "text": "Existing"}, headers=headers)

        res = await client.post(
            "/api/v1/ai/brief",
            json={"input_text": "Client wants a contact form", "item_id": item.id},
            headers=headers,
        )
        assert res.status_code == 200
        assert res.json()["applied_item_id"] == item.id

        res = await client.get(f"/api/v1/items/{item.id}", headers=headers)
        assert res.json()["description"] == BRIEF["summary"]
        res = await client.get(f"/api/v1/checklists?item_id={item.id}", headers=headers)
        assert [c["text"] for c in res.json()] == [
            "Existing", "Install the form plugin", "Embed the form on the homepage",
        ]

        activity = (await client.get(f"/api/v1/boards/{board.id}/activity", headers=headers)).json()
        assert activity[0]["description"] == 'Applied AI brief to "Contact form"'
    finally:
        app.dependency_overrides.pop(get_brief_generator, None)


@pytest.mark.asyncio
async def test_apply_brief_checks_access_first(client: AsyncClient, db_session, group, outsider_user, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "gsk_service_key_123")
    fake = FakeProvider()
    app.dependency_overrides[get_brief_generator] = lambda: BriefGenerator(transport=httpx.MockTransport(fake))
    try:
        item = await make_item(db_session, group, "Contact form")
        res = await client.post(
            "/api/v1/ai/brief",
            json={"input_text": "Client wants a contact form", "item_id": item.id},
            headers=get_auth_headers(outsider_user),
        )
        assert res.status_code == 403
        assert fake.requests == []
    finally:
        app.dependency_overrides.pop(get_brief_generator, None)
