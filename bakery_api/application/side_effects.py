"""Best-effort secondary writes.

Status history rows, slot releases, inventory adjustments, discount usage
and emails follow a primary order update. Their failure is logged with the
order id and step name and never fails the primary operation.
"""

from collections.abc import Awaitable
from typing import Any

import structlog

logger = structlog.get_logger()


async def best_effort(step: str, order_id: str, operation: Awaitable[Any]) -> bool:
    """Await a secondary write, logging instead of raising on failure.

    Args:
        step: Step name for the log event (e.g. ``release_slot``).
        order_id: Order the step belongs to.
        operation: Awaitable performing the write.

    Returns:
        True if the step completed.
    """
    try:
        await operation
    except Exception as e:
        logger.warning(
            "Best-effort step failed",
            step=step,
            order_id=order_id,
            error=str(e),
        )
        return False
    return True
