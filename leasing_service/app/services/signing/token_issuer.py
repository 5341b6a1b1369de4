import secrets
from datetime import datetime, timedelta
from typing import Optional, Tuple

from shared.core.config import settings
from ...core.time_utils import utcnow

TOKEN_BYTES = 32


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def issue_token(slot, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """Mint a fresh signing token on ``slot``, replacing any unconsumed one."""
    now = now or utcnow()
    token = generate_token()
    expires_at = now + timedelta(days=settings.SIGNING_TOKEN_TTL_DAYS)
    slot.signing_token = token
    slot.token_issued_at = now
    slot.token_expires_at = expires_at
    return token, expires_at


def retire_token(slot) -> None:
    """Take the slot's live token out of circulation but keep it resolvable."""
    if slot.signing_token:
        slot.retired_signing_token = slot.signing_token
    slot.signing_token = None
    slot.token_expires_at = None


def consumed_token_values(slot) -> dict:
    """Column values that retire ``slot``'s token as part of a signature write."""
    return {
        "signing_token": None,
        "token_expires_at": None,
        "retired_signing_token": slot.signing_token or slot.retired_signing_token,
    }
