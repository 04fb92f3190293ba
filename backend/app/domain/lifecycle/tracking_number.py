"""
Tracking number generation.

Tracking numbers are ``TRK`` followed by random base-36 characters, padded
to the configured length (12 by default), and checked against the store
before use.
"""

import logging
import secrets
import string
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import AppException
from backend.app.models.parcel import Parcel

logger = logging.getLogger(__name__)

TRACKING_PREFIX = "TRK"
TRACKING_ALPHABET = string.ascii_uppercase + string.digits


def generate_tracking_number(length: Optional[int] = None) -> str:
    length = length or settings.tracking_number_length
    body = "".join(
        secrets.choice(TRACKING_ALPHABET) for _ in range(length - len(TRACKING_PREFIX))
    )
    return f"{TRACKING_PREFIX}{body}"


async def tracking_number_exists(db: AsyncSession, tracking_number: str) -> bool:
    result = await db.execute(
        select(Parcel.id).where(Parcel.tracking_number == tracking_number)
    )
    return result.scalar_one_or_none() is not None


async def assign_tracking_number(
    db: AsyncSession,
    generator: Callable[[], str] = generate_tracking_number,
    max_attempts: Optional[int] = None,
) -> str:
    """
    Return a tracking number not yet used by any parcel.

    The unique constraint on parcels.tracking_number still backs this check
    for concurrent creations.

    Raises:
        AppException: no free number found within max_attempts
    """
    max_attempts = max_attempts or settings.tracking_number_max_attempts

    for attempt in range(1, max_attempts + 1):
        candidate = generator()
        if not await tracking_number_exists(db, candidate):
            return candidate
        logger.warning("Tracking number collision on attempt %d: %s", attempt, candidate)

    raise AppException(
        message="Could not allocate a unique tracking number",
        error_code="ERR_TRACKING_001",
        status_code=503,
        details={"attempts": max_attempts}
    )
