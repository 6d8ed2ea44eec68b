from datetime import datetime

from pydantic import BaseModel


class ZoomConnectResponse(BaseModel):
    auth_url: str
    state: str


class ZoomStatusResponse(BaseModel):
    connected: bool
    zoom_email: str | None
    connected_at: datetime | None
    token_expired: bool
