"""
WhatsApp Webhook Receiver

FastAPI router for the Cloud API webhook.
Verifies, decodes and acknowledges; all processing happens in a
background task owned by the application's bootstrap.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from config import Config
from pipeline.resolver import UnknownVerifyToken

from .schemas import WHATSAPP_OBJECT, WebhookEnvelope
from .security import SIGNATURE_HEADER, verify_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WhatsApp Transport"])


def _bad_request(error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": error},
    )


# ============================================================================
# WEBHOOK CHALLENGE (Setup only)
# ============================================================================

@router.get("/webhook")
async def whatsapp_webhook_challenge(
    request: Request,
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """
    Verify webhook subscription challenge from Meta.

    The verify token identifies the tenant; any active tenant's token
    (or the environment token in fallback mode) is accepted.

    Returns:
        The challenge string (plain text), or 403 "Forbidden"
    """
    logger.info(
        "GET /webhook - Verification attempt",
        extra={
            "mode": hub_mode,
            "token": "present" if hub_verify_token else "missing",
            "challenge": "present" if hub_challenge else "missing",
        },
    )

    if hub_mode != "subscribe":
        logger.warning('Webhook verification failed: mode is not "subscribe"')
        return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)

    resolver = request.app.state.bootstrap.resolver
    try:
        tenant = await resolver.resolve_by_verify_token(hub_verify_token)
    except UnknownVerifyToken as e:
        logger.warning(f"Webhook verification failed: {e}")
        return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)

    logger.info("Webhook verified successfully", extra={"tenant_id": tenant.id})
    return PlainTextResponse(hub_challenge or "")


# ============================================================================
# WEBHOOK RECEIVER (Message processing)
# ============================================================================

@router.post("/webhook")
async def whatsapp_webhook_receiver(request: Request) -> JSONResponse:
    """
    Receive WhatsApp events via webhook.

    Flow:
    1. Get raw body
    2. Verify signature when present and a secret is configured (401 if invalid)
    3. Decode envelope (400 if malformed)
    4. Ignore non-WhatsApp objects (200)
    5. Schedule processing and acknowledge immediately (200)

    WhatsApp retries anything but a fast 200, so processing never runs
    inline.
    """
    body = await request.body()

    # Step 2: Verify signature (security boundary)
    signature = request.headers.get(SIGNATURE_HEADER)
    app_secret = Config.app_secret()
    if signature and app_secret:
        if not verify_signature(body, signature, app_secret):
            logger.error("Invalid webhook signature")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"success": False, "error": "Invalid signature"},
            )
        logger.debug("Signature verified for WhatsApp webhook")
    elif signature:
        logger.warning("Webhook signature present but FACEBOOK_APP_SECRET not configured")

    # Step 3: Decode
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("POST /webhook - Invalid JSON payload")
        return _bad_request("Invalid JSON payload")

    logger.debug(f"POST /webhook - Received: {json.dumps(payload, indent=2)}")

    if not isinstance(payload, dict):
        return _bad_request("Webhook payload must be a JSON object")

    # Step 4: Only WhatsApp Business Account events are processed
    if payload.get("object") != WHATSAPP_OBJECT:
        logger.warning(f"POST /webhook - Not a WhatsApp webhook event: {payload.get('object')}")
        return JSONResponse(content={"success": True, "message": "Not a WhatsApp webhook event"})

    try:
        envelope = WebhookEnvelope.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"POST /webhook - Malformed envelope: {e.error_count()} error(s)")
        return _bad_request("Malformed webhook payload")

    # Step 5: Process asynchronously, acknowledge now
    bootstrap = request.app.state.bootstrap
    bootstrap.tasks.spawn(
        bootstrap.orchestrator.handle_delivery, envelope, name="whatsapp-delivery"
    )

    return JSONResponse(content={"success": True, "message": "Webhook received"})
