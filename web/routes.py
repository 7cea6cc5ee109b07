"""HTTP and WebSocket endpoints."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from core.errors import DashboardError, NotFoundError, ValidationError
from core.event_bus import (
    BANK_SETTINGS_UPDATED,
    QUEUE_UPDATE,
    SETTING_CHANGED,
    SETTINGS_UPDATED,
    channel_for,
)
from core.orchestrator import RuntimeBundle
from web.connection_manager import ConnectionManager
from web.schemas import ApplyChangesRequest, SettingPatchRequest

logger = logging.getLogger("dash.api")

router = APIRouter()


def get_bundle(request: Request) -> RuntimeBundle:
    return request.app.state.bundle


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.ws_manager


# ---------------------------------------------------------------------------
# Automation
# ---------------------------------------------------------------------------

@router.post("/automation/apply-changes", status_code=202)
def apply_changes(
    body: ApplyChangesRequest,
    bundle: RuntimeBundle = Depends(get_bundle),
    manager: ConnectionManager = Depends(get_manager),
) -> Any:
    identifier = (body.identifier or "").strip()
    if not identifier:
        raise ValidationError("IGG ID is required")

    logger.info("Received automation request for IGG ID: %s", identifier)

    try:
        bundle.policy.admit(identifier)
        position = bundle.queue.enqueue(identifier, manager)
    except DashboardError:
        raise
    except Exception as exc:
        logger.exception("Automation error")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) or "Automation failed",
                "details": type(exc).__name__,
            },
        )

    try:
        bundle.directory.log_activity("APPLY_CHANGES_QUEUED", igg_id=identifier, category="automation")
    except Exception:
        logger.warning("Could not record activity for %s", identifier, exc_info=True)

    return {"success": True, "message": "Request added to queue", "queuePosition": position}


@router.get("/automation/apply-changes")
def automation_status(bundle: RuntimeBundle = Depends(get_bundle)) -> dict[str, Any]:
    return bundle.queue.get_status().as_payload()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def _require_known(bundle: RuntimeBundle, identifier: str) -> None:
    if not bundle.policy.is_known(identifier):
        raise NotFoundError("IGG ID not found")


def _read(bundle: RuntimeBundle, identifier: str, bank: bool) -> dict[str, Any]:
    _require_known(bundle, identifier)
    if bank:
        return bundle.settings.read_bank_settings(identifier)
    return bundle.settings.read_settings(identifier)


def _save(
    bundle: RuntimeBundle,
    manager: ConnectionManager,
    identifier: str,
    document: Any,
    bank: bool,
) -> dict[str, Any]:
    _require_known(bundle, identifier)
    if not isinstance(document, dict):
        raise ValidationError("Settings body must be a JSON object")
    if bank:
        bundle.settings.write_bank_settings(identifier, document)
    else:
        bundle.settings.write_settings(identifier, document)
    bundle.directory.touch_sync(identifier)
    bundle.directory.log_activity(
        "SAVE_BANK_SETTINGS" if bank else "SAVE_SETTINGS", igg_id=identifier, category="settings"
    )
    manager.publish_to(
        channel_for(identifier),
        BANK_SETTINGS_UPDATED if bank else SETTINGS_UPDATED,
        {"iggId": identifier, "settings": document, "timestamp": _now_iso()},
    )
    return {"success": True, "message": "Settings saved successfully"}


def _patch(
    bundle: RuntimeBundle,
    manager: ConnectionManager,
    identifier: str,
    body: SettingPatchRequest,
    bank: bool,
) -> dict[str, Any]:
    if not body.path:
        raise ValidationError("Path is required")
    _require_known(bundle, identifier)
    if bank:
        bundle.settings.patch_bank(identifier, body.path, body.value)
    else:
        bundle.settings.patch(identifier, body.path, body.value)
    bundle.directory.touch_sync(identifier)
    bundle.directory.log_activity(
        "UPDATE_BANK_SETTING" if bank else "UPDATE_SETTING",
        igg_id=identifier,
        category=body.path.split(".")[0],
        details={"path": body.path, "value": body.value},
    )
    manager.publish_to(
        channel_for(identifier),
        SETTING_CHANGED,
        {"iggId": identifier, "path": body.path, "value": body.value, "timestamp": _now_iso()},
    )
    return {
        "success": True,
        "message": "Setting updated successfully",
        "path": body.path,
        "value": body.value,
    }


@router.get("/settings/{identifier}")
def get_settings(identifier: str, bundle: RuntimeBundle = Depends(get_bundle)) -> dict[str, Any]:
    return _read(bundle, identifier, bank=False)


@router.put("/settings/{identifier}")
def put_settings(
    identifier: str,
    document: Any = Body(...),
    bundle: RuntimeBundle = Depends(get_bundle),
    manager: ConnectionManager = Depends(get_manager),
) -> dict[str, Any]:
    return _save(bundle, manager, identifier, document, bank=False)


@router.patch("/settings/{identifier}")
def patch_settings(
    identifier: str,
    body: SettingPatchRequest,
    bundle: RuntimeBundle = Depends(get_bundle),
    manager: ConnectionManager = Depends(get_manager),
) -> dict[str, Any]:
    return _patch(bundle, manager, identifier, body, bank=False)


@router.get("/settings/{identifier}/bank")
def get_bank_settings(identifier: str, bundle: RuntimeBundle = Depends(get_bundle)) -> dict[str, Any]:
    return _read(bundle, identifier, bank=True)


@router.put("/settings/{identifier}/bank")
def put_bank_settings(
    identifier: str,
    document: Any = Body(...),
    bundle: RuntimeBundle = Depends(get_bundle),
    manager: ConnectionManager = Depends(get_manager),
) -> dict[str, Any]:
    return _save(bundle, manager, identifier, document, bank=True)


@router.patch("/settings/{identifier}/bank")
def patch_bank_settings(
    identifier: str,
    body: SettingPatchRequest,
    bundle: RuntimeBundle = Depends(get_bundle),
    manager: ConnectionManager = Depends(get_manager),
) -> dict[str, Any]:
    return _patch(bundle, manager, identifier, body, bank=True)


# ---------------------------------------------------------------------------
# Directory / health
# ---------------------------------------------------------------------------

@router.get("/igg-ids")
def list_igg_ids(bundle: RuntimeBundle = Depends(get_bundle)) -> list[dict[str, Any]]:
    return bundle.directory.list_igg_ids()


@router.get("/health")
def health(bundle: RuntimeBundle = Depends(get_bundle)) -> dict[str, Any]:
    return {"status": "ok", "queue": bundle.queue.get_status().as_payload()}


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------

@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket) -> None:
    manager: ConnectionManager = ws.app.state.ws_manager
    bundle: RuntimeBundle = ws.app.state.bundle
    await manager.connect(ws)
    try:
        await ws.send_json({"event": QUEUE_UPDATE, "data": bundle.queue.get_status().as_payload()})
        while True:
            raw = await ws.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if not isinstance(message, dict):
                continue
            identifier = message.get("identifier") or message.get("iggId")
            if not isinstance(identifier, str) or not identifier:
                continue
            if message.get("action") == "subscribe":
                manager.subscribe(ws, identifier)
            elif message.get("action") == "unsubscribe":
                manager.unsubscribe(ws, identifier)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(ws)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()
