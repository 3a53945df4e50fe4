"""SMS reply tokens: replies reference a handoff with H:<token> somewhere in the body."""

import re

TOKEN_PATTERN = re.compile(r"\bH:([A-Za-z0-9]{4,12})\b")


def extract_token(body: str) -> str | None:
    m = TOKEN_PATTERN.search(body or "")
    return m.group(1) if m else None


def reply_hint(token: str) -> str:
    return f"H:{token}"
