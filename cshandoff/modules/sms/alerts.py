"""
Alerts: high-priority handoffs get an append-only audit update recording that an
alert went out, and an SMS to the on-call numbers when Twilio is configured.
"""

import logging
from uuid import UUID

import httpx

from cshandoff.config import Settings
from cshandoff.errors import HandoffError
from cshandoff.modules.handoffs.store import HandoffStore
from cshandoff.modules.sms import twilio
from cshandoff.modules.sms.tokens import reply_hint

logger = logging.getLogger(__name__)

ALERT_PRIORITY = "high"
SUMMARY_MAX = 120
SYSTEM_AUTHOR = "system"


def alert_message(summary: str | None, location_code: str | None) -> str:
    location = f" [{location_code}]" if location_code else ""
    return f"SYSTEM: SMS ALERT TRIGGERED (high){location}: {(summary or '')[:SUMMARY_MAX]}"


def should_alert(priority: str | None) -> bool:
    return str(priority or "").strip().lower() == ALERT_PRIORITY


async def record_alert(
    store: HandoffStore,
    http: httpx.AsyncClient,
    settings: Settings,
    handoff_id: UUID | str,
    summary: str | None,
    priority: str | None,
    location_code: str | None = None,
) -> bool:
    """Returns True when an alert was recorded, False when the priority does not warrant one."""
    if not should_alert(priority):
        return False

    await store.append_update(
        None,
        handoff_id,
        alert_message(summary, location_code),
        source="system",
        author_display_name=SYSTEM_AUTHOR,
    )
    logger.info("High-priority alert recorded for handoff %s", handoff_id)

    if settings.sms_enabled and settings.alert_recipients:
        # The audit row is already written; a failed mint is logged, not raised
        try:
            token = await store.create_token(handoff_id)
        except HandoffError as e:
            logger.error("Reply token for handoff %s not minted, SMS not sent: %s", handoff_id, e.message)
            return True
        text = (
            f"HIGH handoff{f' [{location_code}]' if location_code else ''}: "
            f"{(summary or '')[:SUMMARY_MAX]}\n"
            f"Reply with {reply_hint(token)} to add an update."
        )
        await twilio.send_alert(http, settings, text)
    return True
