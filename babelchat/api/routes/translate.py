# babelchat/api/routes/translate.py

from fastapi import APIRouter, HTTPException

from babelchat.core import state
from babelchat.core.errors import TranslationUnavailable
from babelchat.core.logging import get_logger
from babelchat.models.models import DetectLanguageRequest, TranslateRequest

logger = get_logger(__name__)

router = APIRouter(tags=["Translation"])

# ============================================================================
# TRANSLATION PROXY
# ============================================================================

@router.post("/translate")
async def translate(request: TranslateRequest):
    """
    Translate a string or every string value of an object.

    Results are kept in the gateway's short-lived proxy cache, so repeated
    requests for the same content do not reach the engine.

    Returns:
        {"text": "..."} for a string, the translated object otherwise

    Raises:
        HTTPException: 400 on missing content or target, 502 if the
        translation engine failed
    """
    if not request.content:
        raise HTTPException(status_code=400, detail="Missing content to translate")
    if not request.targetLocale:
        raise HTTPException(status_code=400, detail="Missing targetLocale")

    source = request.sourceLocale or "en"
    logger.info("🌍 Translating from %s to %s", source, request.targetLocale)

    data = {"text": request.content} if isinstance(request.content, str) else request.content
    try:
        return await state.gateway.localize(data, source, request.targetLocale)
    except TranslationUnavailable as e:
        logger.error("Translation error: %s", e.message)
        raise HTTPException(status_code=502, detail=f"Translation failed: {e.message}")


@router.post("/detect-language")
async def detect_language(request: DetectLanguageRequest):
    """Detect the language of a text; falls back to script heuristics."""
    if not request.text:
        raise HTTPException(status_code=400, detail="Missing text")
    return {"locale": await state.gateway.detect_language(request.text)}
