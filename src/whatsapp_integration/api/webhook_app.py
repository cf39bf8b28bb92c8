"""
WhatsApp Webhook Service

FastAPI app that receives WhatsApp webhooks from Meta Cloud API.

Responsibilities:
- Answer the verification handshake (per tenant and global)
- Verify webhook signature (when WHATSAPP_APP_SECRET is set)
- Resolve tenant from the callback URL slug
- Reconcile messages and statuses into the store
- Always return 200 for deliveries so Meta does not retry
"""

import json
import logging

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from whatsapp_integration.core.db import get_db
from whatsapp_integration.core.logging import set_correlation_id, setup_logging
from whatsapp_integration.core.settings import Settings, get_settings
from whatsapp_integration.persistence.repo import WhatsAppRepository
from whatsapp_integration.providers.meta_cloud.webhook import validate_signature, verify_webhook_challenge
from whatsapp_integration.routing.tenant_resolver import TenantResolver
from whatsapp_integration.service.webhook_reconciler import WebhookReconciler

setup_logging(get_settings().LOG_LEVEL)
logger = logging.getLogger(__name__)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tags each request (and its logs) with X-Request-ID, generating one if absent."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response


app = FastAPI(
    title="WhatsApp Webhook",
    description="Receives WhatsApp webhooks and reconciles them into tenant state",
    version="1.0.0",
)
app.add_middleware(CorrelationIdMiddleware)


def _challenge_response(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    expected_token: str,
) -> Response:
    result = verify_webhook_challenge(mode, token, challenge, expected_token)
    if result is not None:
        return Response(content=result, media_type="text/plain")
    raise HTTPException(status_code=403, detail="Verification failed")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "whatsapp-webhook"}


@app.get("/webhook/waba")
async def verify_global_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
):
    """Verification for the app-level webhook configured in the Meta dashboard."""
    return _challenge_response(
        hub_mode, hub_verify_token, hub_challenge, settings.WHATSAPP_WEBHOOK_VERIFY_TOKEN
    )


@app.get("/webhook/whatsapp/{slug}")
async def verify_tenant_webhook(
    slug: str,
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
):
    """
    Verification for a tenant callback URL.

    The verify token is the slug itself; the store is not consulted so slug
    existence is not revealed.
    """
    logger.info(
        "Webhook verification request",
        extra={"slug": slug, "mode": hub_mode, "token_received": bool(hub_verify_token)},
    )
    return _challenge_response(hub_mode, hub_verify_token, hub_challenge, slug)


@app.post("/webhook/whatsapp/{slug}")
async def receive_tenant_webhook(
    slug: str,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Receive events for one tenant.

    Flow:
    1. Validate signature (if an app secret is configured)
    2. Parse payload
    3. Resolve organization from slug
    4. Reconcile messages/statuses item by item
    5. Return 200
    """
    body = await request.body()

    if settings.WHATSAPP_APP_SECRET:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not validate_signature(body, signature, settings.WHATSAPP_APP_SECRET):
            logger.warning("Invalid Meta webhook signature", extra={"slug": slug})
            raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON payload", extra={"slug": slug})
        return {"status": "ignored", "reason": "invalid_json"}

    if not isinstance(payload, dict):
        return {"status": "ignored", "reason": "invalid_payload"}

    try:
        organization = TenantResolver(WhatsAppRepository(db)).resolve_slug(slug)
        if organization is None:
            return {"status": "ignored", "reason": "unknown_organization"}

        report = WebhookReconciler(db).process_payload(organization, payload)
        return {"status": "accepted", **report.to_dict()}

    except Exception as e:
        logger.error(f"Error processing webhook: {e}", exc_info=True)
        # Still return 200 to prevent Meta from retrying
        return {"status": "error", "message": str(e)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8090)
