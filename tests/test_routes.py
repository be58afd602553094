"""Tests for the HTTP API, over ASGITransport against fakeredis."""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from conftest import make_gateway
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from jose import jwt

from babelchat.core import state
from babelchat.core.config import settings
from babelchat.main import app

SECRET = "test-secret"


def token_for(user_id: str, display_name: str, language: str = "en") -> str:
    claims = {
        "sub": user_id,
        "aud": "authenticated",
        "email": f"{user_id}@example.com",
        "user_metadata": {"display_name": display_name, "preferred_language": language},
    }
    return jwt.encode(claims, SECRET, algorithm="HS256")


def auth(user_id: str, display_name: str, language: str = "en") -> dict:
    return {"Authorization": f"Bearer {token_for(user_id, display_name, language)}"}


ALICE = auth("alice-id", "Alice", "es")
BOB = auth("bob-id", "Bob", "en")
CAROL = auth("carol-id", "Carol", "fr")


@pytest_asyncio.fixture
async def client(monkeypatch, engine) -> AsyncGenerator[AsyncClient, None]:
    """App state on fakeredis and a mocked engine, with a client bound to the app."""
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", SECRET)
    monkeypatch.setattr(settings, "JWT_AUDIENCE", "authenticated")
    await state.init(
        client=FakeAsyncRedis(decode_responses=True),
        translation_gateway=make_gateway(engine),
        backend="memory",
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    await state.redis_client.flushall()
    await state.shutdown()


async def create_room(client: AsyncClient, headers: dict, **body) -> dict:
    response = await client.post("/rooms", json={"name": "Lobby", "description": "", **body}, headers=headers)
    assert response.status_code == 200
    return response.json()


# --- Basics ---


@pytest.mark.asyncio
async def test_root_and_health(client: AsyncClient) -> None:
    root = await client.get("/")
    assert root.status_code == 200
    assert {lang["code"] for lang in root.json()["languages"]} == {"en", "es", "fr", "de", "ja", "hi"}

    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"


# --- Auth and profiles ---


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client: AsyncClient) -> None:
    assert (await client.get("/profiles/me")).status_code == 401
    assert (await client.get("/rooms", headers={"Authorization": "Bearer garbage"})).status_code == 401


@pytest.mark.asyncio
async def test_token_for_wrong_audience_is_rejected(client: AsyncClient) -> None:
    token = jwt.encode({"sub": "alice-id", "aud": "other"}, SECRET, algorithm="HS256")
    response = await client.get("/profiles/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_profile_created_from_token(client: AsyncClient) -> None:
    """The first request creates the profile from the token metadata."""
    response = await client.get("/profiles/me", headers=ALICE)

    assert response.status_code == 200
    assert response.json()["display_name"] == "Alice"
    assert response.json()["preferred_language"] == "es"


@pytest.mark.asyncio
async def test_update_profile(client: AsyncClient) -> None:
    response = await client.patch("/profiles/me", json={"preferred_language": "ja"}, headers=ALICE)
    assert response.status_code == 200
    assert response.json()["preferred_language"] == "ja"

    assert (await client.get("/profiles/me", headers=ALICE)).json()["preferred_language"] == "ja"

    bad = await client.patch("/profiles/me", json={"preferred_language": "xx"}, headers=ALICE)
    assert bad.status_code == 400
    empty = await client.patch("/profiles/me", json={"display_name": "  "}, headers=ALICE)
    assert empty.status_code == 400


# --- Rooms ---


@pytest.mark.asyncio
async def test_create_and_list_rooms(client: AsyncClient) -> None:
    room = await create_room(client, BOB, name="Design", description="UI talk")

    mine = (await client.get("/rooms", headers=BOB)).json()
    assert [r["id"] for r in mine] == [room["id"]]
    assert (await client.get("/rooms", headers=ALICE)).json() == []

    public = (await client.get("/rooms/public", params={"search": "ui"}, headers=ALICE)).json()
    assert [(r["id"], r["member_count"]) for r in public] == [(room["id"], 1)]
    assert "invite_code" not in public[0]


@pytest.mark.asyncio
async def test_create_room_requires_name(client: AsyncClient) -> None:
    response = await client.post("/rooms", json={"name": "   "}, headers=BOB)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_join_public_room(client: AsyncClient) -> None:
    room = await create_room(client, BOB)

    first = await client.post(f"/rooms/{room['id']}/join", headers=ALICE)
    second = await client.post(f"/rooms/{room['id']}/join", headers=ALICE)

    assert first.json()["status"] == "joined"
    assert second.json()["status"] == "already_member"
    details = (await client.get(f"/rooms/{room['id']}", headers=ALICE)).json()
    assert details["member_count"] == 2
    assert details["invite_code"] == room["invite_code"]


@pytest.mark.asyncio
async def test_private_room_hidden_from_outsiders(client: AsyncClient) -> None:
    room = await create_room(client, BOB, is_public=False)

    assert (await client.get(f"/rooms/{room['id']}", headers=ALICE)).status_code == 404
    assert (await client.post(f"/rooms/{room['id']}/join", headers=ALICE)).status_code == 404
    assert (await client.get("/rooms/public", headers=ALICE)).json() == []


@pytest.mark.asyncio
async def test_join_by_code(client: AsyncClient) -> None:
    room = await create_room(client, BOB, is_public=False)

    bad = await client.post("/rooms/join-by-code", json={"code": "nope1234"}, headers=ALICE)
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Invalid invite code"

    good = await client.post("/rooms/join-by-code", json={"code": room["invite_code"]}, headers=ALICE)
    assert good.status_code == 200
    assert good.json()["id"] == room["id"]
    assert [r["id"] for r in (await client.get("/rooms", headers=ALICE)).json()] == [room["id"]]


@pytest.mark.asyncio
async def test_leave_room(client: AsyncClient) -> None:
    room = await create_room(client, BOB)
    await client.post(f"/rooms/{room['id']}/join", headers=ALICE)

    response = await client.post(f"/rooms/{room['id']}/leave", headers=ALICE)

    assert response.json()["status"] == "left"
    assert (await client.get("/rooms", headers=ALICE)).json() == []


@pytest.mark.asyncio
async def test_regenerate_invite_code(client: AsyncClient) -> None:
    room = await create_room(client, BOB)
    await client.post(f"/rooms/{room['id']}/join", headers=ALICE)

    forbidden = await client.post(f"/rooms/{room['id']}/invite-code", headers=ALICE)
    assert forbidden.status_code == 403

    updated = await client.post(f"/rooms/{room['id']}/invite-code", headers=BOB)
    assert updated.status_code == 200
    assert updated.json()["invite_code"] != room["invite_code"]


# --- Messages ---


@pytest.mark.asyncio
async def test_post_and_read_translated_messages(client: AsyncClient, engine) -> None:
    """Bob writes in English; Alice reads the history in Spanish."""
    engine.dictionary[("Hello", "es")] = "Hola"
    room = await create_room(client, BOB)
    await client.post(f"/rooms/{room['id']}/join", headers=ALICE)

    posted = await client.post(f"/rooms/{room['id']}/messages", json={"content": "Hello"}, headers=BOB)
    assert posted.status_code == 200
    assert posted.json()["source_language"] == "en"

    history = (await client.get(f"/rooms/{room['id']}/messages", headers=ALICE)).json()
    assert [(m["content"], m["translation"], m["translation_failed"]) for m in history] == [
        ("Hello", "Hola", False)
    ]


@pytest.mark.asyncio
async def test_post_message_errors(client: AsyncClient) -> None:
    room = await create_room(client, BOB)

    outsider = await client.post(f"/rooms/{room['id']}/messages", json={"content": "hi"}, headers=ALICE)
    assert outsider.status_code == 403

    empty = await client.post(f"/rooms/{room['id']}/messages", json={"content": "  "}, headers=BOB)
    assert empty.status_code == 400

    missing = await client.post("/rooms/no-such-room/messages", json={"content": "hi"}, headers=BOB)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_message_translation_endpoint(client: AsyncClient, engine) -> None:
    """The second request for the same language is served from the cache."""
    engine.dictionary[("Hello", "fr")] = "Bonjour"
    room = await create_room(client, BOB)
    message = (await client.post(f"/rooms/{room['id']}/messages", json={"content": "Hello"}, headers=BOB)).json()

    first = (await client.get(f"/messages/{message['id']}/translation", params={"lang": "fr"}, headers=BOB)).json()
    second = (await client.get(f"/messages/{message['id']}/translation", params={"lang": "fr"}, headers=BOB)).json()

    assert (first["translation"], first["outcome"]) == ("Bonjour", "translated")
    assert (second["translation"], second["outcome"]) == ("Bonjour", "cached")
    assert second["original"] == "Hello"

    same = (await client.get(f"/messages/{message['id']}/translation", headers=BOB)).json()
    assert same["outcome"] == "not_needed"


# --- Translation proxy ---


@pytest.mark.asyncio
async def test_translate_proxy(client: AsyncClient, engine) -> None:
    engine.dictionary[("Good morning", "de")] = "Guten Morgen"
    engine.dictionary[("Yes", "de")] = "Ja"

    text = await client.post("/translate", json={"content": "Good morning", "targetLocale": "de"})
    assert text.json() == {"text": "Guten Morgen"}

    obj = await client.post(
        "/translate", json={"content": {"ok": "Yes"}, "sourceLocale": "en", "targetLocale": "de"}
    )
    assert obj.json() == {"ok": "Ja"}


@pytest.mark.asyncio
async def test_translate_proxy_errors(client: AsyncClient, engine) -> None:
    assert (await client.post("/translate", json={"content": "", "targetLocale": "de"})).status_code == 400

    engine.fail_status = 500
    failed = await client.post("/translate", json={"content": "Hello", "targetLocale": "de"})
    assert failed.status_code == 502


@pytest.mark.asyncio
async def test_detect_language(client: AsyncClient, engine) -> None:
    engine.detected_locale = "es-MX"
    assert (await client.post("/detect-language", json={"text": "Hola amigos"})).json() == {"locale": "es"}
    assert (await client.post("/detect-language", json={"text": ""})).status_code == 400

    engine.detected_locale = 123
    malformed = await client.post("/detect-language", json={"text": "¿Dónde está?"})
    assert malformed.status_code == 200
    assert malformed.json() == {"locale": "es"}
