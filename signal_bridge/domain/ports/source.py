from __future__ import annotations

from typing import Any, List, Protocol

from ..models import SourceMessage


class MessageSource(Protocol):
    """Narrow adapter over the channel transport.

    ``get_history_since`` must return messages with ids greater than
    ``since_id`` in ascending id order.
    """

    async def get_history_since(self, handle: Any, since_id: int, limit: int) -> List[SourceMessage]:
        ...

    async def get_latest_message_id(self, handle: Any) -> int:
        ...

    async def probe(self) -> bool:
        ...

    async def reconnect(self) -> bool:
        ...
