"""WebSocket control channel for live fan state.

  Client → Server:
    updateFanSpeed      {floorId, fanId, rpm}
    updateMultipleFans  {floorId, fans: [{fanId, rpm}, …]}

  Server → Client:
    connected            {clientId}                 (unicast, on connect)
    fanUpdated           {fan}                      (broadcast)
    multipleFansUpdated  {summary}                  (broadcast)
    errorMessage         {event, message, …}        (unicast to the sender)
"""

from __future__ import annotations

import json
import logging

from fastapi import WebSocket, WebSocketDisconnect

from fanhub.control.broadcast import ConnectionHub, Observer, hub
from fanhub.control.controller import set_multiple, set_speed
from fanhub.db import get_db
from fanhub.errors import FanHubError

logger = logging.getLogger(__name__)


async def control_ws_handler(websocket: WebSocket) -> None:
    """Handle one client connection on the control channel.

    Mount it in FastAPI via:
        app.add_api_websocket_route("/ws", control_ws_handler)
    """
    await websocket.accept()
    observer = hub.register(websocket)

    try:
        await hub.send(observer, "connected", {"clientId": observer.client_id})

        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await hub.send(observer, "errorMessage", {"message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await hub.send(observer, "errorMessage", {"message": "Expected a JSON object"})
                continue

            msg_type = msg.get("type", "")

            try:
                await _dispatch(hub, observer, msg_type, msg)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception(
                    "Failed to handle %s from %s", msg_type, observer.client_id
                )
                await hub.send(
                    observer, "errorMessage",
                    {"event": msg_type, "message": "Internal error handling message"},
                )

    except WebSocketDisconnect:
        logger.info("Client disconnected: %s", observer.client_id)
    except Exception:
        logger.exception("Error in control WebSocket for %s", observer.client_id)
    finally:
        hub.unregister(observer)


# ── Message handlers ──────────────────────────────────────────────


async def _dispatch(channel: ConnectionHub, observer: Observer, msg_type: str, msg: dict) -> None:
    if msg_type == "updateFanSpeed":
        await _handle_update_fan_speed(channel, observer, msg)

    elif msg_type == "updateMultipleFans":
        await _handle_update_multiple(channel, observer, msg)

    else:
        logger.warning("Unknown message type from %s: %s", observer.client_id, msg_type)
        await channel.send(
            observer, "errorMessage",
            {"event": msg_type, "message": f"Unknown message type: {msg_type}"},
        )


async def _handle_update_fan_speed(channel: ConnectionHub, observer: Observer, msg: dict) -> None:
    try:
        fan = set_speed(get_db(), msg.get("floorId"), msg.get("fanId"), msg.get("rpm"))
    except FanHubError as exc:
        await channel.send(observer, "errorMessage", {"event": "updateFanSpeed", **exc.to_dict()})
        return
    await channel.broadcast("fanUpdated", {"fan": fan})


async def _handle_update_multiple(channel: ConnectionHub, observer: Observer, msg: dict) -> None:
    try:
        summary = set_multiple(get_db(), msg.get("floorId"), msg.get("fans"))
    except FanHubError as exc:
        await channel.send(
            observer, "errorMessage", {"event": "updateMultipleFans", **exc.to_dict()}
        )
        return

    if not summary.floor_found:
        await channel.send(
            observer, "errorMessage",
            {
                "event": "updateMultipleFans",
                "message": "Floor not found",
                "summary": summary.to_dict(),
            },
        )
        return
    await channel.broadcast("multipleFansUpdated", {"summary": summary.to_dict()})
