import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..services.realtime import RealtimeNotifier, error_frame

logger = logging.getLogger(__name__)

router = APIRouter()


def handshake_token(websocket: WebSocket) -> Optional[str]:
    """Token from ``?token=`` or an ``Authorization: Bearer`` header."""
    token = websocket.query_params.get("token")
    if token:
        return token
    authorization = websocket.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    notifier: RealtimeNotifier = websocket.app.state.notifier
    connection_id = await notifier.connect(websocket, handshake_token(websocket))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug(f"Non-JSON frame on {connection_id}")
                await websocket.send_json(error_frame("Invalid message"))
                continue
            if not isinstance(frame, dict):
                await websocket.send_json(error_frame("Invalid message"))
                continue

            # late authentication for clients that could not send a token on connect
            if "auth" in frame:
                auth = frame.get("auth") or {}
                token = auth.get("token") if isinstance(auth, dict) else None
                user_id = notifier.authenticate(connection_id, token) if token else None
                if user_id is None:
                    await websocket.send_json(error_frame("Unauthorized"))
                else:
                    await websocket.send_json(
                        {"event": "authenticated", "data": {"userId": user_id}}
                    )
                continue

            reply = notifier.handle_message(
                connection_id, frame.get("event"), frame.get("data")
            )
            await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        notifier.disconnect(connection_id)
