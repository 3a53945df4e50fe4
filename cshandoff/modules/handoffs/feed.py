"""
Feed Ordering Policy: unresolved before resolved, most recently touched first
within each group.
"""

from datetime import datetime
from typing import Iterable

from cshandoff.models.handoff import Handoff
from cshandoff.modules.handoffs.status import is_resolved


def effective_timestamp(handoff: Handoff) -> datetime:
    return handoff.effective_at


def order_feed(handoffs: Iterable[Handoff]) -> list[Handoff]:
    # Two stable passes: newest first, then resolved to the bottom.
    ordered = sorted(handoffs, key=effective_timestamp, reverse=True)
    return sorted(ordered, key=lambda h: is_resolved(h.status))


def visible_feed(handoffs: Iterable[Handoff], show_resolved: bool = False) -> list[Handoff]:
    ordered = order_feed(handoffs)
    if show_resolved:
        return ordered
    return [h for h in ordered if not is_resolved(h.status)]
