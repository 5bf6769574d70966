import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from telethon import TelegramClient, functions, types
from telethon.errors import (
    ChannelInvalidError,
    ChannelPrivateError,
    FloodWaitError,
    InviteHashExpiredError,
    InviteHashInvalidError,
    RPCError,
    UserAlreadyParticipantError,
)
from telethon.utils import get_peer_id

from ..domain.errors import TransientSourceError
from ..domain.models import ChannelInfo, SourceMessage, priority_from_title

logger = logging.getLogger(__name__)


class TelegramMessageSource:
    """Telethon-backed message source: connection, channel resolution and history polling."""

    def __init__(self, api_id: int, api_hash: str, session_name: str) -> None:
        self._client = TelegramClient(session_name, api_id, api_hash)
        self._authorized = False
        self._lock = asyncio.Lock()

    @property
    def is_authorized(self) -> bool:
        return self._authorized

    # ------------------------------------------------------------------ #
    async def start(self) -> None:
        await self._ensure_connection()
        logger.info("Telegram client connected (authorized=%s)", self._authorized)

    async def stop(self) -> None:
        if self._client.is_connected():
            await self._client.disconnect()
        logger.info("Telegram client disconnected.")

    async def _ensure_connection(self) -> None:
        if not self._client.is_connected():
            await self._client.connect()
        self._authorized = await self._client.is_user_authorized()

    def get_status(self) -> Dict[str, Any]:
        return {
            "connected": self._client.is_connected(),
            "authorized": self._authorized,
        }

    # ------------------------------------------------------------------ #
    async def get_history_since(self, handle: Any, since_id: int, limit: int) -> List[SourceMessage]:
        try:
            raw = await self._client.get_messages(handle, limit=limit, min_id=since_id)
        except FloodWaitError as exc:
            raise TransientSourceError(f"Rate limited by Telegram, wait {exc.seconds} seconds") from exc
        except (RPCError, ConnectionError, OSError) as exc:
            raise TransientSourceError(f"History request failed: {exc}") from exc

        messages = [
            SourceMessage(
                message_id=message.id,
                text=message.message or "",
                timestamp=message.date if isinstance(message.date, datetime) else datetime.now(timezone.utc),
            )
            for message in raw or []
            if isinstance(message, types.Message) and message.id > since_id
        ]
        messages.sort(key=lambda item: item.message_id)
        return messages

    async def get_latest_message_id(self, handle: Any) -> int:
        try:
            latest = await self._client.get_messages(handle, limit=1)
        except FloodWaitError as exc:
            raise TransientSourceError(f"Rate limited by Telegram, wait {exc.seconds} seconds") from exc
        except (RPCError, ConnectionError, OSError) as exc:
            raise TransientSourceError(f"Latest message request failed: {exc}") from exc
        return latest[0].id if latest else 0

    async def probe(self) -> bool:
        if not self._client.is_connected():
            return False
        try:
            await self._client(functions.account.GetAccountTTLRequest())
        except (RPCError, ConnectionError, OSError) as exc:
            logger.warning("Telegram probe failed: %s", exc)
            return False
        return True

    async def reconnect(self) -> bool:
        async with self._lock:
            if self._client.is_connected():
                await self._client.disconnect()
            try:
                await self._ensure_connection()
            except (ConnectionError, OSError) as exc:
                logger.warning("Telegram reconnect failed: %s", exc)
                return False
        if not self._authorized:
            logger.warning("Telegram reconnected but the session is not authorized.")
        return self._authorized

    # ------------------------------------------------------------------ #
    async def resolve_channels(self, identifiers: Iterable[str]) -> List[ChannelInfo]:
        """Resolve ids, usernames or t.me links into monitorable channels; unknown ones are skipped."""
        await self._ensure_connection()
        if not self._authorized:
            raise ValueError("Authorize the Telegram session before monitoring channels.")

        channels: List[ChannelInfo] = []
        for identifier in identifiers:
            entity = await self._resolve(identifier)
            if entity is None:
                logger.warning("Unable to resolve channel %s; skipping.", identifier)
                continue
            channels.append(self._channel_info(entity))
        return channels

    @staticmethod
    def _channel_info(entity: Any) -> ChannelInfo:
        canonical_id = str(get_peer_id(entity))
        title = getattr(entity, "title", None) or getattr(entity, "username", None) or canonical_id
        return ChannelInfo(
            channel_id=canonical_id,
            title=title,
            handle=entity,
            priority=priority_from_title(title),
        )

    async def _resolve(self, identifier: str) -> Optional[object]:
        identifier = identifier.strip()
        if not identifier:
            return None
        try:
            return await self._client.get_entity(_as_peer(identifier))
        except (ChannelInvalidError, ChannelPrivateError, ValueError):
            pass

        entity = await self._resolve_entity_from_invite(identifier)
        if entity is not None:
            return entity
        return await self._resolve_entity_from_dialogs(identifier)

    async def _resolve_entity_from_dialogs(self, identifier: str) -> Optional[object]:
        numeric_identifier: Optional[str]
        try:
            numeric_identifier = str(int(identifier))
        except ValueError:
            numeric_identifier = None
        username_identifier = identifier.lstrip("@").lower()

        async for dialog in self._client.iter_dialogs():
            entity = dialog.entity
            if not entity:
                continue
            if numeric_identifier is not None and str(get_peer_id(entity)) == numeric_identifier:
                return entity
            username = getattr(entity, "username", None)
            if username and username_identifier == username.lower():
                return entity
        return None

    async def _resolve_entity_from_invite(self, identifier: str) -> Optional[object]:
        if "t.me/" not in identifier.lower():
            return None

        slug = identifier.split("t.me/")[-1].strip()
        if slug.startswith("+"):
            try:
                result = await self._client(functions.messages.ImportChatInviteRequest(slug.lstrip("+")))
            except (InviteHashInvalidError, InviteHashExpiredError, UserAlreadyParticipantError):
                logger.warning("Invite hash invalid or already joined for %s", identifier)
                return None
            except FloodWaitError as exc:
                logger.warning("Flood wait while importing invite: %s", exc.seconds)
                return None
            if isinstance(result, types.messages.ChatInviteAlready):
                return result.chat
            chats = getattr(result, "chats", None)
            return chats[0] if chats else None

        slug = slug.lstrip("@")
        if not slug:
            return None
        try:
            return await self._client.get_entity(slug)
        except (ValueError, RPCError):
            return None

    async def list_available_channels(self) -> List[Dict[str, Any]]:
        await self._ensure_connection()
        if not self._authorized:
            raise ValueError("Authorize the Telegram session before listing channels.")

        results: List[Dict[str, Any]] = []
        async for dialog in self._client.iter_dialogs():
            entity = dialog.entity
            if not entity or not hasattr(entity, "id"):
                continue
            is_channel = getattr(entity, "broadcast", False) or getattr(entity, "megagroup", False)
            entity_type = entity.__class__.__name__.lower()
            if entity_type not in {"channel", "chat"} and not is_channel:
                continue
            title = dialog.name or getattr(entity, "title", None) or str(get_peer_id(entity))
            results.append(
                {
                    "id": str(get_peer_id(entity)),
                    "title": title,
                    "username": getattr(entity, "username", None),
                    "type": entity_type,
                    "priority": priority_from_title(title).name,
                }
            )

        results.sort(key=lambda item: item["title"].casefold())
        return results


def _as_peer(identifier: str) -> Any:
    try:
        return int(identifier)
    except ValueError:
        return identifier
