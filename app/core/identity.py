"""Identity context for reviewer actions.

Authentication happens upstream of this service; the gateway forwards the
acting user's id in the ``X-Actor-Id`` header.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


async def get_actor_id(
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
) -> str:
    """Get the acting user id for audit fields such as ``decided_by``.

    Raises:
        HTTPException: header missing or blank
    """
    if not x_actor_id or not x_actor_id.strip():
        LOGGER.warning("No actor id provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header missing",
        )
    return x_actor_id.strip()
