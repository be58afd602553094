# babelchat/api/routes/root.py

from fastapi import APIRouter

from babelchat.services.languages import SUPPORTED_LANGUAGES

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and the languages it translates between.
    """
    return {
        "message": "BabelChat - realtime multilingual chat",
        "version": "1.0",
        "languages": SUPPORTED_LANGUAGES,
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/rooms",
            "profiles": "/profiles/me",
            "translate": "/translate",
            "health": "/health",
        },
    }
