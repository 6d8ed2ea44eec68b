"""
Fuzzy agent name matching.

Links the agent name printed on a NAP report to an existing User using
thefuzz.token_sort_ratio, so "DELA CRUZ, JUAN" and "Juan Dela Cruz" resolve
to the same person.  Unlike clock data, reports never create users: an
unmatched agent simply stays unlinked.
"""

import logging
import re
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from thefuzz import fuzz

from tms.core.config import settings
from tms.db.models import User

logger = logging.getLogger(__name__)

_ws_re = re.compile(r"\s+")
_punct_re = re.compile(r"[,.]")


def clean_name(raw: str) -> str:
    """Strip punctuation and collapse whitespace."""
    return _ws_re.sub(" ", _punct_re.sub(" ", raw)).strip()


async def find_matching_user(agent_name: str, db: AsyncSession) -> uuid.UUID | None:
    """
    Return the id of the active user whose name best matches ``agent_name``.

    Args:
        agent_name: Agent name as printed on the report.
        db: Active async database session.

    Returns:
        UUID of the matched user, or None below ``FUZZY_MATCH_THRESHOLD``.
    """
    cleaned = clean_name(agent_name)

    result = await db.execute(
        select(User.id, User.name).where(User.is_active == True)  # noqa: E712
    )
    users = result.all()

    best_score = 0
    best_id: uuid.UUID | None = None

    for user_id, user_name in users:
        if not user_name:
            continue
        score = fuzz.token_sort_ratio(cleaned.lower(), clean_name(user_name).lower())
        if score > best_score:
            best_score = score
            best_id = user_id

    matched = best_id if best_score >= settings.FUZZY_MATCH_THRESHOLD else None
    if matched is not None:
        logger.debug(
            "Agent matched: '%s' → id=%s (score=%d, threshold=%d)",
            cleaned, matched, best_score, settings.FUZZY_MATCH_THRESHOLD,
        )
    else:
        logger.info(
            "Agent not matched: '%s' (best score=%d < threshold=%d)",
            cleaned, best_score, settings.FUZZY_MATCH_THRESHOLD,
        )

    return matched
