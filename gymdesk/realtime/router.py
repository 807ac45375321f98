# gymdesk/realtime/router.py
"""
WebSocket endpoint for live notifications.

Client frames are JSON objects with an ``event`` key:
``authenticate`` (with ``token``), ``join-room`` / ``leave-room`` (with ``room``).
Server frames are ``{"event": ..., "data": ...}``.
"""
from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Dict, Tuple

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from gymdesk.auth.db import SessionLocal
from gymdesk.auth.deps import user_from_token
from gymdesk.auth.permissions import room_for
from gymdesk.errors import GymDeskError
from gymdesk.realtime.bus import BUS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class SocketSubscriber:
    """Bus subscriber bound to one connection; safe to call from any thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self.user_id = None
        self.role = None

    def deliver(self, event: str, data: Dict[str, Any]) -> None:
        self.loop.call_soon_threadsafe(self.queue.put_nowait, {"event": event, "data": data})


def _authenticate(token: str) -> Tuple[str, str, str]:
    db = SessionLocal()
    try:
        user = user_from_token(db, token)
        return str(user.id), user.role, user.name
    finally:
        db.close()


async def _writer(websocket: WebSocket, subscriber: SocketSubscriber) -> None:
    while True:
        frame = await subscriber.queue.get()
        await websocket.send_text(json.dumps(frame, default=str))


async def _handle(subscriber: SocketSubscriber, message: Dict[str, Any]) -> None:
    event = message.get("event")

    if event == "authenticate":
        try:
            user_id, role, name = await run_in_threadpool(_authenticate, str(message.get("token") or ""))
        except GymDeskError as e:
            logger.info("Socket authentication failed: %s", e.message)
            subscriber.deliver("authentication-error", {"success": False, "message": "Authentication failed"})
            return
        subscriber.user_id, subscriber.role = user_id, role
        BUS.join(subscriber, room_for(role))
        logger.info("User %s joined %s", name, room_for(role))
        subscriber.deliver("authenticated", {"success": True, "role": role})

    # TODO: restrict join-room to rooms of the authenticated role once clients stop relying on it
    elif event == "join-room" and message.get("room"):
        BUS.join(subscriber, str(message["room"]))
    elif event == "leave-room" and message.get("room"):
        BUS.leave(subscriber, str(message["room"]))
    else:
        subscriber.deliver("error", {"success": False, "message": f"Unknown event: {event}"})


@router.websocket("/ws")
async def events_socket(websocket: WebSocket):
    await websocket.accept()
    subscriber = SocketSubscriber(asyncio.get_running_loop())
    writer = asyncio.create_task(_writer(websocket, subscriber))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            if not isinstance(message, dict):
                subscriber.deliver("error", {"success": False, "message": "Invalid message"})
                continue
            await _handle(subscriber, message)
    except WebSocketDisconnect:
        pass
    finally:
        BUS.drop(subscriber)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await writer
