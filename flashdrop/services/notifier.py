# flashdrop/services/notifier.py
"""
Change notification boundary.

The engine pushes stock and purchase events to whatever implements
ChangeNotifier. It is passed in explicitly (the WebSocket ConnectionManager
in the running app, a recording mock in tests) rather than looked up from a
module-level handle.
"""

import logging
from typing import Any, Dict, List, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ChangeNotifier(Protocol):
    async def stock_updated(self, drop_id: int, available_stock: int) -> None:
        ...

    async def purchase_completed(
        self,
        drop_id: int,
        username: str,
        recent_purchasers: List[Dict[str, Any]],
    ) -> None:
        ...


class NullNotifier:
    """Drops every event. Used when no transport is attached."""

    async def stock_updated(self, drop_id: int, available_stock: int) -> None:
        logger.debug(f"No notifier attached, dropping stock_updated for drop {drop_id}")

    async def purchase_completed(self, drop_id: int, username: str, recent_purchasers) -> None:
        logger.debug(f"No notifier attached, dropping purchase_completed for drop {drop_id}")
