"""
Chat repository (persistence + live mirrors for channels and messages).
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Tuple
from uuid import uuid4

from domain.chat import GENERAL_CHANNEL, GENERAL_CHANNEL_ID, ChatChannel, ChatMessage
from domain.errors import NotFoundError
from domain.time import Clock, parse_utc_datetime, to_iso_utc, utc_now
from repositories.base import CollectionMirror
from repositories.store import CollectionKind, RecordStore


def _channel_to_document(channel: ChatChannel) -> dict[str, Any]:
    return {
        "name": channel.name,
        "createdBy": channel.created_by,
        "createdAt": to_iso_utc(channel.created_at, name="created_at") if channel.created_at else None,
    }


def _document_to_channel(document: Mapping[str, Any]) -> ChatChannel:
    created_at = document.get("createdAt")
    return ChatChannel(
        channel_id=str(document["id"]),
        name=str(document["name"]),
        created_by=document.get("createdBy"),
        created_at=parse_utc_datetime(created_at) if created_at else None,
    )


def _message_to_document(message: ChatMessage) -> dict[str, Any]:
    return {
        "channelId": message.channel_id,
        "user": message.user,
        "text": message.text,
        "timestamp": to_iso_utc(message.timestamp, name="timestamp"),
    }


def _document_to_message(document: Mapping[str, Any]) -> ChatMessage:
    return ChatMessage(
        message_id=str(document["id"]),
        # Messages written before channels existed belong to "general".
        channel_id=str(document.get("channelId") or GENERAL_CHANNEL_ID),
        user=str(document["user"]),
        text=str(document.get("text") or ""),
        timestamp=parse_utc_datetime(document["timestamp"]),
    )


class ChatRepository:
    def __init__(self, store: RecordStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._channels: CollectionMirror[ChatChannel] = CollectionMirror(
            store, CollectionKind.CHAT_CHANNELS, _document_to_channel
        )
        self._messages: CollectionMirror[ChatMessage] = CollectionMirror(
            store, CollectionKind.CHAT_MESSAGES, _document_to_message
        )

    @property
    def mirrors(self) -> Tuple[CollectionMirror[Any], ...]:
        return (self._channels, self._messages)

    @property
    def channels(self) -> Tuple[ChatChannel, ...]:
        """The built-in general channel followed by stored channels."""

        stored = tuple(c for c in self._channels.items if c.channel_id != GENERAL_CHANNEL_ID)
        return (GENERAL_CHANNEL,) + stored

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return self._messages.items

    def messages_for(self, channel_id: str) -> Tuple[ChatMessage, ...]:
        return tuple(m for m in self._messages.items if m.channel_id == channel_id)

    def subscribe_messages(self, callback: Callable[[Tuple[ChatMessage, ...]], None]) -> Callable[[], None]:
        return self._messages.listen(callback)

    def create_channel(self, name: str, created_by: str) -> ChatChannel:
        if not name or not name.strip():
            raise ValueError("channel name is required")
        channel = ChatChannel(
            channel_id=f"channel-{uuid4().hex}",
            name=name.strip(),
            created_by=created_by,
            created_at=self._clock(),
        )
        self._store.insert(CollectionKind.CHAT_CHANNELS, channel.channel_id, _channel_to_document(channel))
        return channel

    def post_message(self, channel_id: str, user: str, text: str) -> ChatMessage:
        if not text or not text.strip():
            raise ValueError("message text is required")
        if channel_id not in {c.channel_id for c in self.channels}:
            raise NotFoundError(f"Unknown chat channel '{channel_id}'")
        message = ChatMessage(
            message_id=f"msg-{uuid4().hex}",
            channel_id=channel_id,
            user=user,
            text=text,
            timestamp=self._clock(),
        )
        self._store.insert(CollectionKind.CHAT_MESSAGES, message.message_id, _message_to_document(message))
        return message

    def close(self) -> None:
        for mirror in self.mirrors:
            mirror.close()


__all__ = ["ChatRepository"]
