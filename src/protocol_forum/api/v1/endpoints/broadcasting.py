# src/protocol_forum/api/v1/endpoints/broadcasting.py
"""Channel authorization and the WebSocket stream of broadcast events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from protocol_forum.schemas.broadcasting import ChannelAuthRequest, ChannelAuthResponse
from protocol_forum.services.broadcast import authorize_channel

from ..dependencies import ActiveUserDep, FanoutDep, SessionDep, resolve_token_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/broadcasting", tags=["broadcasting"])


@router.post("/auth")
def authorize(
    body: ChannelAuthRequest,
    current_user: ActiveUserDep,
    db: SessionDep,
) -> ChannelAuthResponse:
    """Check whether the caller may subscribe to a channel.

    Raises:
        HTTPException: 403 if the channel is unknown or not open to the caller.
    """
    if not authorize_channel(db, current_user.id, body.channel_name):
        logger.info("Denied channel %s to user %s", body.channel_name, current_user.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized for this channel",
        )
    return ChannelAuthResponse(authorized=True, channel_name=body.channel_name)


def _authorize_subscription(db: Session, token: str, channel_name: str) -> tuple[bool, int | None]:
    """Resolve the token and check the channel, then release the session."""
    try:
        user = resolve_token_user(token, db)
        return authorize_channel(db, user.id, channel_name), user.id
    except HTTPException:
        return False, None
    finally:
        db.close()


async def _forward(websocket: WebSocket, messages: AsyncIterator[dict[str, Any]]) -> None:
    async for message in messages:
        await websocket.send_json(message)


@router.websocket("/ws/{channel_name}")
async def channel_stream(
    websocket: WebSocket,
    channel_name: str,
    db: SessionDep,
    fanout: FanoutDep,
    token: str = Query(default=""),
) -> None:
    """Stream ``{channel, event, data}`` frames for one channel.

    The connection is refused with a policy-violation close code when the
    token is invalid or the user may not join the channel.
    """
    allowed, user_id = await asyncio.to_thread(_authorize_subscription, db, token, channel_name)

    if not allowed:
        logger.info("Refused WebSocket subscription to %s for user %s", channel_name, user_id)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    channel = channel_name.removeprefix("private-")
    async with fanout.transport.subscribe(channel) as messages:
        await websocket.accept()
        await websocket.send_json({"event": "subscription_succeeded", "channel": channel})
        forward = asyncio.create_task(_forward(websocket, messages))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("User %s left channel %s", user_id, channel)
        finally:
            forward.cancel()
            await asyncio.gather(forward, return_exceptions=True)
