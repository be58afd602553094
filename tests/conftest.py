import asyncio
import json
from collections.abc import AsyncGenerator
from typing import Any, Dict, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis

from babelchat.models.models import Profile
from babelchat.services.message_channel import MessageChannel
from babelchat.services.profiles import ProfileStore
from babelchat.services.proxy_cache import ProxyCache
from babelchat.services.room_manager import RoomManager
from babelchat.services.translation_cache import TranslationCache
from babelchat.services.translation_gateway import LingoTranslationGateway
from babelchat.services.translator import MessageTranslator

ENGINE_URL = "https://engine.test"


class FakeEngine:
    """Stand-in for the Lingo.dev engine behind an httpx.MockTransport.

    Translations come from ``dictionary`` keyed by (text, target locale);
    unknown texts are echoed back tagged with the target locale.
    """

    def __init__(self) -> None:
        self.dictionary: Dict[Tuple[str, str], str] = {}
        self.delays: Dict[str, float] = {}
        self.fail_status: Optional[int] = None
        self.hang: bool = False
        self.detected_locale: Any = None
        self.requests: list[dict] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append({"path": request.url.path, "payload": payload})

        if self.hang:
            await asyncio.sleep(10)
        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"error": "engine down"})

        if request.url.path == "/recognize":
            return httpx.Response(200, json={"locale": self.detected_locale})

        target = payload["locale"]["target"]
        data = {}
        for key, text in payload["data"].items():
            await asyncio.sleep(self.delays.get(text, 0))
            data[key] = self.dictionary.get((text, target), f"[{target}] {text}")
        return httpx.Response(200, json={"data": data})

    def translation_requests(self) -> list[dict]:
        return [r for r in self.requests if r["path"] == "/i18n"]


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    """A fresh in-memory Redis for each test."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


def make_gateway(engine: FakeEngine, timeout: float = 1.0, **kwargs) -> LingoTranslationGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(engine.handler))
    return LingoTranslationGateway(
        "test-key", base_url=ENGINE_URL, timeout=timeout, client=client, **kwargs
    )


@pytest_asyncio.fixture
async def gateway(engine: FakeEngine) -> AsyncGenerator[LingoTranslationGateway, None]:
    gw = make_gateway(engine, proxy_cache=ProxyCache())
    yield gw
    await gw.close()


@pytest.fixture
def translation_cache(redis_client) -> TranslationCache:
    return TranslationCache(redis_client)


@pytest.fixture
def translator(translation_cache, gateway) -> MessageTranslator:
    return MessageTranslator(translation_cache, gateway)


@pytest_asyncio.fixture
async def channel(redis_client) -> AsyncGenerator[MessageChannel, None]:
    ch = MessageChannel(redis_client)
    yield ch
    await ch.close()


@pytest.fixture
def room_manager(redis_client, channel) -> RoomManager:
    return RoomManager(redis_client, channel)


@pytest.fixture
def profiles(redis_client) -> ProfileStore:
    return ProfileStore(redis_client)


@pytest_asyncio.fixture
async def alice(profiles) -> Profile:
    return await profiles.get_or_create("alice-id", "Alice", "es")


@pytest_asyncio.fixture
async def bob(profiles) -> Profile:
    return await profiles.get_or_create("bob-id", "Bob", "en")
