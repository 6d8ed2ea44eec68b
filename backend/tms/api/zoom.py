import logging
import uuid
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from tms.core.clock import as_utc
from tms.core.config import settings
from tms.core.middleware import get_current_user
from tms.core.security import create_zoom_state_token, decode_token
from tms.db.models import User
from tms.db.session import get_db
from tms.schemas.zoom import ZoomConnectResponse, ZoomStatusResponse
from tms.services import zoom_client
from tms.services.zoom_client import ZoomOAuthError

logger = logging.getLogger(__name__)

router = APIRouter()


def _settings_redirect(error: str | None = None) -> RedirectResponse:
    base = f"{settings.FRONTEND_URL.rstrip('/')}/settings"
    if error is None:
        return RedirectResponse(f"{base}?auth=success", status_code=status.HTTP_302_FOUND)
    return RedirectResponse(
        f"{base}?auth=error&error={quote(error)}",
        status_code=status.HTTP_302_FOUND,
    )


@router.post("/connect", response_model=ZoomConnectResponse, summary="Start Zoom OAuth")
@router.get("/auth/initiate", response_model=ZoomConnectResponse, include_in_schema=False)
async def initiate_oauth(
    current_user: User = Depends(get_current_user),
) -> ZoomConnectResponse:
    state = create_zoom_state_token({"sub": str(current_user.id)})
    try:
        auth_url = zoom_client.build_authorize_url(state)
    except ZoomOAuthError as exc:
        logger.error("Zoom OAuth initiate failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to initiate OAuth flow: {exc}",
        )
    return ZoomConnectResponse(auth_url=auth_url, state=state)


@router.get("/callback", summary="Zoom OAuth redirect target")
@router.get("/auth/callback", include_in_schema=False)
async def oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> RedirectResponse:
    if error:
        logger.warning("Zoom OAuth returned error: %s", error)
        return _settings_redirect(error)
    if not code:
        return _settings_redirect("Authorization code is required")

    try:
        payload = decode_token(state or "")
        if payload.get("type") != "zoom_state":
            raise JWTError("wrong token type")
        user_id = uuid.UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        logger.warning("Zoom OAuth callback with invalid state")
        return _settings_redirect("Invalid or expired OAuth state")

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return _settings_redirect("User not found")

    try:
        tokens = await zoom_client.exchange_code(code)
        profile = await zoom_client.get_zoom_profile(tokens.access_token)
    except ZoomOAuthError as exc:
        return _settings_redirect(str(exc))

    zoom_client.store_tokens(user, tokens, profile)
    await db.commit()
    logger.info("Zoom connected for user %s (%s)", user.id, user.zoom_email)
    return _settings_redirect()


@router.get("/status", response_model=ZoomStatusResponse, summary="Zoom connection status")
async def connection_status(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ZoomStatusResponse:
    expired = zoom_client.token_expired(current_user)
    if current_user.zoom_connected and expired:
        try:
            await zoom_client.get_valid_access_token(current_user)
        except ZoomOAuthError as exc:
            logger.info("Zoom token refresh failed for user %s: %s", current_user.id, exc)
        else:
            await db.commit()
            expired = False

    return ZoomStatusResponse(
        connected=current_user.zoom_connected,
        zoom_email=current_user.zoom_email,
        connected_at=as_utc(current_user.zoom_connected_at) if current_user.zoom_connected_at else None,
        token_expired=expired,
    )


@router.post("/disconnect", summary="Disconnect the Zoom account")
async def disconnect(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    zoom_client.clear_tokens(current_user)
    await db.commit()
    logger.info("Zoom disconnected for user %s", current_user.id)
    return {"message": "Zoom account disconnected successfully"}
