from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from erp_api.services.realtime import broadcast_manager

logger = logging.getLogger(__name__)


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services own the transaction boundary and the business rules, delegating data
    access to repositories.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _notify(self, event_type: str, payload: Dict[str, Any], user_id: Optional[UUID] = None) -> None:
        """Publish a real-time hint; failures are logged and never reach the caller."""
        try:
            await broadcast_manager.publish(event_type, payload, user_id=user_id)
        except Exception:
            logger.exception("Failed to publish %s event", event_type)
