from __future__ import annotations

"""Relational store for channels, messages, and file records."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    select,
)


class WorkspaceStoreError(RuntimeError):
    """Raised when a workspace record cannot be read or written."""
    pass


@dataclass(frozen=True)
class ChannelRow:
    id: str
    name: str


@dataclass(frozen=True)
class MessageRow:
    """Stored chat message joined with its channel name."""
    id: str
    channel_id: str
    channel_name: str
    user_id: str
    user_name: str
    content: str
    parent_message_id: str | None
    has_reply: bool
    created_at: str
    updated_at: str | None

    def as_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class FileRow:
    """Stored file record; the bytes live in the blob store at ``storage_path``."""
    id: str
    channel_id: str
    channel_name: str
    user_id: str
    user_name: str
    file_name: str
    storage_path: str
    size_bytes: int
    created_at: str

    def as_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class WorkspaceStore:
    """Store workspace records in a SQL database."""
    def __init__(self, connection_uri: str) -> None:
        """Initialize the store and ensure tables exist."""
        self._engine = create_engine(connection_uri)
        self._metadata = MetaData()
        self._channels = Table(
            "channels",
            self._metadata,
            Column("id", String(36), primary_key=True),
            Column("name", String(255), nullable=False, unique=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self._messages = Table(
            "messages",
            self._metadata,
            Column("id", String(36), primary_key=True),
            Column("channel_id", String(36), ForeignKey("channels.id"), nullable=False),
            Column("user_id", String(128), nullable=False),
            Column("user_name", String(255), nullable=False),
            Column("content", Text, nullable=False),
            Column("parent_message_id", String(36), nullable=True),
            Column("has_reply", Boolean, nullable=False, default=False),
            Column("created_at", DateTime(timezone=True), nullable=False),
            Column("updated_at", DateTime(timezone=True), nullable=True),
        )
        self._files = Table(
            "files",
            self._metadata,
            Column("id", String(36), primary_key=True),
            Column("channel_id", String(36), ForeignKey("channels.id"), nullable=False),
            Column("user_id", String(128), nullable=False),
            Column("user_name", String(255), nullable=False),
            Column("file_name", String(512), nullable=False),
            Column("storage_path", Text, nullable=False),
            Column("size_bytes", Integer, nullable=False),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self._metadata.create_all(self._engine)

    def create_channel(self, name: str) -> ChannelRow:
        channel_id = str(uuid.uuid4())
        with self._engine.begin() as conn:
            conn.execute(
                self._channels.insert().values(
                    id=channel_id, name=name, created_at=datetime.now(timezone.utc)
                )
            )
        return ChannelRow(id=channel_id, name=name)

    def get_channel(self, channel_id: str) -> ChannelRow | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(self._channels.c.id, self._channels.c.name).where(
                    self._channels.c.id == channel_id
                )
            ).first()
        if row is None:
            return None
        return ChannelRow(id=row.id, name=row.name)

    def get_channel_by_name(self, name: str) -> ChannelRow | None:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(self._channels.c.id, self._channels.c.name).where(
                    self._channels.c.name == name
                )
            ).first()
        if row is None:
            return None
        return ChannelRow(id=row.id, name=row.name)

    def ensure_channel(self, name: str) -> tuple[ChannelRow, bool]:
        """Return the channel called ``name``, creating it when missing.

        The flag is True when a new channel was created.
        """
        existing = self.get_channel_by_name(name)
        if existing is not None:
            return existing, False
        return self.create_channel(name), True

    def create_message(
        self,
        channel_id: str,
        user_id: str,
        user_name: str,
        content: str,
        parent_message_id: str | None = None,
    ) -> MessageRow:
        """Insert a message and flag its parent as having replies."""
        if self.get_channel(channel_id) is None:
            raise WorkspaceStoreError(f"Channel not found: {channel_id}")
        message_id = str(uuid.uuid4())
        with self._engine.begin() as conn:
            conn.execute(
                self._messages.insert().values(
                    id=message_id,
                    channel_id=channel_id,
                    user_id=user_id,
                    user_name=user_name,
                    content=content,
                    parent_message_id=parent_message_id,
                    has_reply=False,
                    created_at=datetime.now(timezone.utc),
                )
            )
            if parent_message_id:
                conn.execute(
                    self._messages.update()
                    .where(self._messages.c.id == parent_message_id)
                    .values(has_reply=True)
                )
        message = self.get_message(message_id)
        if message is None:
            raise WorkspaceStoreError(f"Message vanished after insert: {message_id}")
        return message

    def update_message(self, message_id: str, content: str) -> MessageRow | None:
        with self._engine.begin() as conn:
            result = conn.execute(
                self._messages.update()
                .where(self._messages.c.id == message_id)
                .values(content=content, updated_at=datetime.now(timezone.utc))
            )
        if result.rowcount == 0:
            return None
        return self.get_message(message_id)

    def get_message(self, message_id: str) -> MessageRow | None:
        query = (
            select(self._messages, self._channels.c.name.label("channel_name"))
            .join(self._channels, self._channels.c.id == self._messages.c.channel_id)
            .where(self._messages.c.id == message_id)
        )
        with self._engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None
        return MessageRow(
            id=row.id,
            channel_id=row.channel_id,
            channel_name=row.channel_name,
            user_id=row.user_id,
            user_name=row.user_name,
            content=row.content,
            parent_message_id=row.parent_message_id,
            has_reply=bool(row.has_reply),
            created_at=_iso(row.created_at) or "",
            updated_at=_iso(row.updated_at),
        )

    def create_file(
        self,
        channel_id: str,
        user_id: str,
        user_name: str,
        file_name: str,
        storage_path: str,
        size_bytes: int,
        file_id: str | None = None,
    ) -> FileRow:
        if self.get_channel(channel_id) is None:
            raise WorkspaceStoreError(f"Channel not found: {channel_id}")
        file_id = file_id or str(uuid.uuid4())
        with self._engine.begin() as conn:
            conn.execute(
                self._files.insert().values(
                    id=file_id,
                    channel_id=channel_id,
                    user_id=user_id,
                    user_name=user_name,
                    file_name=file_name,
                    storage_path=storage_path,
                    size_bytes=size_bytes,
                    created_at=datetime.now(timezone.utc),
                )
            )
        stored = self.get_file(file_id)
        if stored is None:
            raise WorkspaceStoreError(f"File vanished after insert: {file_id}")
        return stored

    def get_file(self, file_id: str) -> FileRow | None:
        query = (
            select(self._files, self._channels.c.name.label("channel_name"))
            .join(self._channels, self._channels.c.id == self._files.c.channel_id)
            .where(self._files.c.id == file_id)
        )
        with self._engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None
        return FileRow(
            id=row.id,
            channel_id=row.channel_id,
            channel_name=row.channel_name,
            user_id=row.user_id,
            user_name=row.user_name,
            file_name=row.file_name,
            storage_path=row.storage_path,
            size_bytes=row.size_bytes,
            created_at=_iso(row.created_at) or "",
        )

    def list_message_ids(self) -> list[str]:
        """Return every message id, oldest first."""
        query = select(self._messages.c.id).order_by(self._messages.c.created_at)
        with self._engine.connect() as conn:
            return [row.id for row in conn.execute(query)]

    def list_file_ids(self) -> list[str]:
        """Return every file id, oldest first."""
        query = select(self._files.c.id).order_by(self._files.c.created_at)
        with self._engine.connect() as conn:
            return [row.id for row in conn.execute(query)]

    def delete_file(self, file_id: str) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(self._files.delete().where(self._files.c.id == file_id))
        return result.rowcount > 0
