"""Tests for the Lingo.dev gateway, against a mocked engine."""

import httpx
import pytest

from babelchat.core.errors import TranslationUnavailable
from babelchat.services.proxy_cache import ProxyCache
from babelchat.services.translation_gateway import LingoTranslationGateway


@pytest.mark.asyncio
async def test_gateway_translates(gateway, engine) -> None:
    """Text goes out in the i18n payload and comes back translated."""
    engine.dictionary[("Hello", "es")] = "Hola"

    assert await gateway.translate("Hello", "en", "es") == "Hola"

    (request,) = engine.translation_requests()
    assert request["payload"]["locale"] == {"source": "en", "target": "es"}
    assert request["payload"]["data"] == {"text": "Hello"}


@pytest.mark.asyncio
async def test_gateway_identity_makes_no_call(gateway, engine) -> None:
    """Same source and target returns the input without touching the network."""
    assert await gateway.translate("Hello", "en", "en") == "Hello"
    assert await gateway.translate("Hello", "en-US", "en") == "Hello"
    assert gateway.calls == 0
    assert engine.requests == []


@pytest.mark.asyncio
async def test_gateway_blank_text_makes_no_call(gateway) -> None:
    assert await gateway.translate("   ", "en", "es") == "   "
    assert gateway.calls == 0


@pytest.mark.asyncio
async def test_gateway_fails_open_on_http_error(gateway, engine) -> None:
    """A 5xx from the engine yields the original text."""
    engine.fail_status = 503

    assert await gateway.translate("Hello", "en", "es") == "Hello"
    with pytest.raises(TranslationUnavailable):
        await gateway.translate_or_raise("Hello", "en", "es")


@pytest.mark.asyncio
async def test_gateway_fails_open_on_timeout(engine) -> None:
    """A hanging engine is cut off after the timeout."""
    engine.hang = True
    gw = LingoTranslationGateway(
        "test-key",
        base_url="https://engine.test",
        timeout=0.05,
        client=httpx.AsyncClient(transport=httpx.MockTransport(engine.handler)),
    )
    try:
        assert await gw.translate("Hello", "en", "es") == "Hello"
    finally:
        await gw.close()


@pytest.mark.asyncio
async def test_gateway_without_key_fails_open(engine) -> None:
    """No API key configured: nothing is sent and the original is kept."""
    gw = LingoTranslationGateway(
        "", client=httpx.AsyncClient(transport=httpx.MockTransport(engine.handler))
    )
    try:
        assert await gw.translate("Hello", "en", "es") == "Hello"
        assert engine.requests == []
    finally:
        await gw.close()


@pytest.mark.asyncio
async def test_gateway_proxy_cache_collapses_repeats(gateway, engine) -> None:
    """The same request within the TTL is served from the proxy cache."""
    engine.dictionary[("Hello", "fr")] = "Bonjour"

    assert await gateway.translate("Hello", "en", "fr") == "Bonjour"
    assert await gateway.translate("Hello", "en", "fr") == "Bonjour"
    assert gateway.calls == 1


@pytest.mark.asyncio
async def test_gateway_proxy_cache_cleared_on_close(engine) -> None:
    cache = ProxyCache()
    gw = LingoTranslationGateway(
        "test-key",
        base_url="https://engine.test",
        proxy_cache=cache,
        client=httpx.AsyncClient(transport=httpx.MockTransport(engine.handler)),
    )
    await gw.translate("Hello", "en", "fr")
    assert len(cache) == 1

    await gw.close()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_gateway_localize_preserves_structure(gateway, engine) -> None:
    """Every string value of an object is translated under its own key."""
    engine.dictionary[("Yes", "de")] = "Ja"
    engine.dictionary[("No", "de")] = "Nein"

    result = await gateway.localize({"ok": "Yes", "cancel": "No"}, "en", "de")
    assert result == {"ok": "Ja", "cancel": "Nein"}


@pytest.mark.asyncio
async def test_gateway_translate_many_keeps_order(gateway, engine) -> None:
    engine.dictionary[("one", "es")] = "uno"
    engine.dictionary[("two", "es")] = "dos"
    engine.delays["one"] = 0.05

    assert await gateway.translate_many(["one", "two"], "en", "es") == ["uno", "dos"]


@pytest.mark.asyncio
async def test_gateway_detect_language_remote(gateway, engine) -> None:
    """The engine's locale is normalized to a two-letter code."""
    engine.detected_locale = "fr-FR"
    assert await gateway.detect_language("Bonjour tout le monde") == "fr"


@pytest.mark.asyncio
async def test_gateway_detect_language_falls_back_to_heuristic(gateway, engine) -> None:
    """With the engine down, script heuristics still answer."""
    engine.fail_status = 500
    assert await gateway.detect_language("こんにちは") == "ja"
    assert await gateway.detect_language("Hello there") == "en"


@pytest.mark.asyncio
async def test_gateway_detect_language_empty_answer(gateway, engine) -> None:
    """An engine answer without a locale also falls back."""
    engine.detected_locale = None
    assert await gateway.detect_language("नमस्ते") == "hi"


@pytest.mark.asyncio
@pytest.mark.parametrize("answer", [123, ["fr"], {"code": "fr"}, "  "])
async def test_gateway_detect_language_ignores_malformed_locale(gateway, engine, answer) -> None:
    """A locale that is not a usable string falls back instead of raising."""
    engine.detected_locale = answer
    assert await gateway.detect_language("garçon") == "fr"
    assert await gateway.detect_language("Bonjour") == "en"
