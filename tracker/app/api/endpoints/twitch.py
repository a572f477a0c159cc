"""
Stream live-status endpoints.
"""

from fastapi import APIRouter, Depends

from tracker.app.core.dependencies import get_twitch_service
from tracker.app.services.twitch import TwitchStatusService

router = APIRouter(tags=["Twitch"])


@router.get("/twitch-status")
async def twitch_status(service: TwitchStatusService = Depends(get_twitch_service)):
    return await service.get_status()


@router.get("/_debug/twitch-env")
async def twitch_env(service: TwitchStatusService = Depends(get_twitch_service)):
    """Credential presence only; never the secret itself."""
    return {
        "client_id_present": bool(service.client_id),
        "secret_present": bool(service.client_secret),
        "sample_id": f"{service.client_id[:6]}..." if service.client_id else None,
    }
