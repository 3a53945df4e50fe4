"""Twilio SMS: outbound alert texts and inbound webhook form parsing."""

import logging
from dataclasses import dataclass, field

import httpx

from cshandoff.config import Settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass
class InboundSms:
    """Normalized inbound message, whatever the transport (Twilio form or JSON)."""
    message: str
    sender: str | None = None
    handoff_id: str | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "InboundSms":
        handoff_id = payload.get("handoff_id") or payload.get("handoffId")
        sender = payload.get("from") or payload.get("From")
        message = payload.get("message") or payload.get("Body") or ""
        return cls(
            message=str(message).strip(),
            sender=str(sender) if sender else None,
            handoff_id=str(handoff_id) if handoff_id else None,
            raw=payload,
        )

    @property
    def author_snapshot(self) -> str:
        return f"sms:{self.sender}" if self.sender else "sms"


async def send_text(http: httpx.AsyncClient, settings: Settings, to: str, text: str) -> dict:
    url = f"{TWILIO_API_BASE}/Accounts/{settings.twilio_account_sid}/Messages.json"
    auth = (settings.twilio_account_sid, settings.twilio_auth_token)

    payload = {
        "From": settings.twilio_from_number,
        "To": to,
        "Body": text,
    }
    response = await http.post(url, data=payload, auth=auth)
    data = response.json()
    if response.status_code >= 400:
        logger.error("Twilio send to %s failed (%s): %s", to, response.status_code, data)
    return data


async def send_alert(http: httpx.AsyncClient, settings: Settings, text: str) -> int:
    """Text every configured alert recipient. Returns how many sends were attempted."""
    if not settings.sms_enabled or not settings.alert_recipients:
        logger.warning("Twilio not configured, skipping outbound SMS alert")
        return 0

    sent = 0
    for to in settings.alert_recipients:
        try:
            await send_text(http, settings, to, text)
            sent += 1
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Twilio send to %s failed: %s", to, e)
    return sent
