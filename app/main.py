"""
Webhook Server for the Expense Ledger Bot

This is the HTTP surface the WhatsApp Cloud API talks to.

ENDPOINTS:
1. GET  /webhook - subscription handshake (echoes hub.challenge)
2. POST /webhook - inbound messages, one Dispatcher run per text message
3. GET  /health  - liveness check

POST /webhook always answers 200 once the signature is accepted, even
for payloads it can't use, so the platform doesn't redeliver them forever.

Components are built on first use, so importing this module needs no
environment configuration.
"""

import json
from typing import Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from ledger_bot import __version__
from ledger_bot.audit import configure_logging
from ledger_bot.config import WhatsAppSettings, get_settings
from ledger_bot.orchestrator import Dispatcher, create_app_components
from ledger_bot.services.messaging import (
    InboundDecodeError,
    decode_webhook,
    verify_challenge,
    verify_signature,
)


logger = structlog.get_logger(__name__)


def _build_dispatcher() -> Dispatcher:
    settings = get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level, debug=app_settings.debug_mode)
    return create_app_components(settings)


def create_app(
    dispatcher: Optional[Dispatcher] = None,
    whatsapp_settings: Optional[WhatsAppSettings] = None,
    dispatcher_factory: Callable[[], Dispatcher] = _build_dispatcher,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        dispatcher: Ready Dispatcher; built from the environment on first use when omitted.
        whatsapp_settings: Webhook credentials; read from the environment when omitted.
        dispatcher_factory: How to build the Dispatcher lazily.
    """
    app = FastAPI(title="Expense Ledger Bot", version=__version__)
    state = {"dispatcher": dispatcher, "whatsapp": whatsapp_settings}

    def get_dispatcher() -> Dispatcher:
        if state["dispatcher"] is None:
            state["dispatcher"] = dispatcher_factory()
        return state["dispatcher"]

    def get_whatsapp_settings() -> WhatsAppSettings:
        if state["whatsapp"] is None:
            state["whatsapp"] = get_settings().whatsapp
        return state["whatsapp"]

    @app.get("/health")
    def health():
        """Health check endpoint: tells us the server is running."""
        return {"status": "ok", "version": __version__}

    @app.get("/webhook")
    def subscribe(request: Request):
        """Echo hub.challenge when the verify token matches."""
        params = request.query_params
        challenge = verify_challenge(
            get_whatsapp_settings().verify_token,
            params.get("hub.mode"),
            params.get("hub.verify_token"),
            params.get("hub.challenge"),
        )
        if challenge is None:
            logger.warning("webhook_subscription_refused", mode=params.get("hub.mode"))
            return PlainTextResponse("Forbidden", status_code=403)
        logger.info("webhook_subscription_accepted")
        return PlainTextResponse(challenge)

    @app.post("/webhook")
    async def receive(request: Request):
        """Decode a webhook delivery and dispatch every text message in it."""
        body = await request.body()

        app_secret = get_whatsapp_settings().app_secret
        if app_secret and not verify_signature(
            app_secret, body, request.headers.get("X-Hub-Signature-256")
        ):
            logger.warning("webhook_signature_rejected")
            return JSONResponse({"status": "forbidden"}, status_code=403)

        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("webhook_body_not_json", size=len(body))
            return {"status": "ignored"}

        try:
            messages = decode_webhook(payload)
        except InboundDecodeError as e:
            logger.warning("webhook_payload_ignored", error=str(e))
            return {"status": "ignored"}

        if not messages:
            return {"status": "ok", "processed": 0}

        dispatcher = get_dispatcher()
        processed = 0
        for message in messages:
            try:
                await dispatcher.handle_and_reply(message)
                processed += 1
            except Exception:
                # One bad message must not stop the rest of the batch
                logger.exception(
                    "dispatch_crashed",
                    sender_id=message.sender_id,
                    message_id=message.message_id,
                )

        return {"status": "ok", "processed": processed}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
