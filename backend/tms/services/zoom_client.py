"""
Zoom OAuth client (user-managed app).

Covers the authorization-code flow only: building the authorize URL,
exchanging the code, refreshing tokens and reading the connected account.
Tokens are persisted on the ``User`` row by the API layer.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import urlencode

import httpx

from tms.core.clock import as_utc, now_utc
from tms.core.config import settings
from tms.db.models import User

logger = logging.getLogger(__name__)

# Refresh this long before the access token actually expires
_EXPIRY_BUFFER = timedelta(minutes=5)

# Overridden in tests with httpx.MockTransport
_transport: httpx.AsyncBaseTransport | None = None


class ZoomOAuthError(Exception):
    pass


@dataclass
class ZoomTokens:
    access_token: str
    refresh_token: str
    expires_at: datetime
    scope: str | None = None


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.ZOOM_API_TIMEOUT_SEC,
        transport=_transport,
    )


def _require_oauth_config() -> tuple[str, str]:
    client_id = settings.ZOOM_OAUTH_CLIENT_ID
    redirect_uri = settings.ZOOM_REDIRECT_URI
    if not client_id or not redirect_uri:
        raise ZoomOAuthError(
            "Missing ZOOM_OAUTH_CLIENT_ID or ZOOM_REDIRECT_URI in environment variables"
        )
    return client_id, redirect_uri


def build_authorize_url(state: str) -> str:
    client_id, redirect_uri = _require_oauth_config()
    query = urlencode(
        {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "state": state,
        }
    )
    return f"{settings.ZOOM_OAUTH_BASE_URL.rstrip('/')}/authorize?{query}"


def _tokens_from_response(data: dict, fallback_refresh: str | None = None) -> ZoomTokens:
    try:
        return ZoomTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or fallback_refresh or "",
            expires_at=now_utc() + timedelta(seconds=int(data.get("expires_in", 3600))),
            scope=data.get("scope"),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ZoomOAuthError(f"Unexpected token response from Zoom: {exc}")


def _json_object(resp: httpx.Response) -> dict | None:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


async def _token_request(params: dict) -> dict:
    client_id, _ = _require_oauth_config()
    url = f"{settings.ZOOM_OAUTH_BASE_URL.rstrip('/')}/token"
    try:
        async with _client() as client:
            resp = await client.post(
                url,
                data=params,
                auth=(client_id, settings.ZOOM_OAUTH_CLIENT_SECRET or ""),
            )
    except httpx.HTTPError as exc:
        logger.warning("Zoom token request failed: %s", exc)
        raise ZoomOAuthError(f"Zoom token request failed: {exc}")

    body = _json_object(resp)
    if resp.status_code != 200:
        reason = (body or {}).get("reason") or (body or {}).get("error_description")
        logger.warning("Zoom token request rejected: %s %s", resp.status_code, resp.text)
        raise ZoomOAuthError(reason or f"Zoom returned HTTP {resp.status_code}")
    if body is None:
        raise ZoomOAuthError("Unexpected token response from Zoom: not a JSON object")
    return body


async def exchange_code(code: str) -> ZoomTokens:
    _, redirect_uri = _require_oauth_config()
    data = await _token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
    )
    logger.info("Zoom OAuth: authorization code exchanged")
    return _tokens_from_response(data)


async def refresh_tokens(refresh_token: str) -> ZoomTokens:
    data = await _token_request(
        {"grant_type": "refresh_token", "refresh_token": refresh_token}
    )
    logger.info("Zoom OAuth: access token refreshed")
    return _tokens_from_response(data, fallback_refresh=refresh_token)


async def get_zoom_profile(access_token: str) -> dict:
    url = f"{settings.ZOOM_API_BASE_URL.rstrip('/')}/users/me"
    try:
        async with _client() as client:
            resp = await client.get(url, headers={"Authorization": f"Bearer {access_token}"})
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Zoom profile request failed: %s", exc)
        raise ZoomOAuthError(f"Failed to read Zoom profile: {exc}")

    profile = _json_object(resp)
    if profile is None:
        logger.warning("Zoom profile response is not a JSON object: %s", resp.text[:200])
        raise ZoomOAuthError("Failed to read Zoom profile: unexpected response")
    return profile


def store_tokens(user: User, tokens: ZoomTokens, profile: dict | None = None) -> None:
    user.zoom_access_token = tokens.access_token
    user.zoom_refresh_token = tokens.refresh_token
    user.zoom_token_expiry = tokens.expires_at
    user.zoom_connected = True
    if profile is not None:
        user.zoom_user_id = profile.get("id")
        user.zoom_email = profile.get("email")
        user.zoom_connected_at = now_utc()


def clear_tokens(user: User) -> None:
    user.zoom_access_token = None
    user.zoom_refresh_token = None
    user.zoom_token_expiry = None
    user.zoom_user_id = None
    user.zoom_email = None
    user.zoom_connected = False
    user.zoom_connected_at = None


def token_expired(user: User) -> bool:
    if user.zoom_token_expiry is None:
        return True
    return now_utc() >= as_utc(user.zoom_token_expiry) - _EXPIRY_BUFFER


async def get_valid_access_token(user: User) -> str:
    """
    Return a usable access token, refreshing it when close to expiry.

    The caller commits the session when the token was refreshed.
    """
    if not user.zoom_connected or not user.zoom_access_token:
        raise ZoomOAuthError("User not authenticated. Please authenticate with Zoom first.")

    if token_expired(user):
        if not user.zoom_refresh_token:
            raise ZoomOAuthError("Zoom session expired. Please reconnect your Zoom account.")
        tokens = await refresh_tokens(user.zoom_refresh_token)
        store_tokens(user, tokens)

    return user.zoom_access_token
