# babelchat/api/routes/profiles.py

from fastapi import APIRouter, Depends, HTTPException

from babelchat.core import state
from babelchat.core.security import get_current_profile
from babelchat.models.models import Profile, UpdateProfileRequest

router = APIRouter(prefix="/profiles", tags=["Profiles"])


@router.get("/me", response_model=Profile)
async def get_my_profile(profile: Profile = Depends(get_current_profile)):
    """The caller's profile. Created on the first authenticated request."""
    return profile


@router.patch("/me", response_model=Profile)
async def update_my_profile(
    request: UpdateProfileRequest, profile: Profile = Depends(get_current_profile)
):
    """
    Update display name, preferred language or avatar.

    A language change re-evaluates every room the user has open over the
    WebSocket: messages are re-translated into the new language.

    Raises:
        HTTPException: 400 on an empty name or unsupported language
    """
    try:
        updated = await state.profiles.update(
            profile.id,
            display_name=request.display_name,
            preferred_language=request.preferred_language,
            avatar_url=request.avatar_url,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except KeyError:
        raise HTTPException(status_code=404, detail="Profile not found")

    if updated.preferred_language != profile.preferred_language:
        await state.connection_manager.change_language(updated.id, updated.preferred_language)
    return updated
