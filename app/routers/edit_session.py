from __future__ import annotations

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from app.core.config import get_settings
from app.core.deps import authenticate_token
from app.core.logging import get_logger
from app.db.session import SessionLocal
from app.services.edit_session import EditSession, edit_sessions
from app.services.reconciler import PriceReconciler

router = APIRouter(tags=["edit-session"])
logger = get_logger()


@router.websocket("/shipments/{shipment_id}/edit-session")
async def edit_session(websocket: WebSocket, shipment_id: str, token: str):
    """Streams form edits in as {"fields": {...}} and price states out.

    {"type": "flush"} rates whatever is pending without waiting for the quiet period.
    """
    async with SessionLocal() as db:
        try:
            user = await authenticate_token(token, db)
        except HTTPException:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()

    async def reconcile(fields: dict):
        async with SessionLocal() as db:
            return await PriceReconciler(db).reconcile(shipment_id, fields, user)

    session = EditSession(
        shipment_id,
        reconcile,
        websocket.send_json,
        quiet_period=get_settings().reconcile_debounce_seconds,
    )
    edit_sessions.register(session)
    logger.info("edit_session_opened", shipment_id=shipment_id, user_id=str(user.id))
    try:
        while True:
            message = await websocket.receive_json()
            if message.get("type") == "flush":
                await session.flush()
            else:
                await session.submit(message.get("fields") or {})
    except WebSocketDisconnect:
        logger.info("edit_session_closed", shipment_id=shipment_id, runs=session.runs)
    finally:
        edit_sessions.unregister(session)
        await session.close()
