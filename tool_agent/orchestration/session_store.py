"""
Conversation State Store.

Keeps the ordered message history of every session, keyed by an opaque
session id. A session is created on first reference and seeded with the
system message. Histories are append-only and can be exported as a plain
JSON-compatible snapshot and restored into any store.
"""

import asyncio
import json
import logging
import os
import tempfile
import weakref
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import quote, unquote

from ..config import StoreConfig
from ..errors import StoreFailure
from ..messages import Message, validate_history

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class Session:
    """Read-only view of a session at a point in time."""

    session_id: str
    messages: tuple[Message, ...] = ()
    awaiting_approval: bool = False

    def to_snapshot(self) -> dict:
        return {
            "version": SNAPSHOT_VERSION,
            "session_id": self.session_id,
            "awaiting_approval": self.awaiting_approval,
            "messages": [m.to_dict() for m in self.messages],
        }

    @classmethod
    def from_snapshot(cls, session_id: str, snapshot: dict) -> "Session":
        """
        Rebuild a session from ``to_snapshot`` output.

        Raises:
            StoreFailure: If the snapshot is malformed or breaks history ordering.
        """
        if not isinstance(snapshot, dict):
            raise StoreFailure("Snapshot must be a JSON object", session_id)
        version = snapshot.get("version")
        if version != SNAPSHOT_VERSION:
            raise StoreFailure(f"Unsupported snapshot version: {version!r}", session_id)
        try:
            messages = tuple(Message.from_dict(m) for m in snapshot.get("messages", []))
            awaiting = bool(snapshot.get("awaiting_approval", False))
            validate_history(messages, allow_pending=awaiting)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreFailure(f"Invalid snapshot: {e}", session_id) from e
        return cls(session_id=session_id, messages=messages, awaiting_approval=awaiting)


class SessionStore(ABC):
    """
    Session state backend.

    Subclasses implement raw load/save; ordering checks, seeding and
    snapshots live here.

    Args:
        system_prompt: Seeded as the first message of every new session.
    """

    def __init__(self, system_prompt: Optional[str] = None):
        self.system_prompt = system_prompt
        # Entries disappear once no turn holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @abstractmethod
    async def _load(self, session_id: str) -> Optional[Session]:
        """Return the stored session, or None if it does not exist."""

    @abstractmethod
    async def _save(self, session: Session) -> None:
        """Persist the session, replacing any previous state."""

    @abstractmethod
    async def list_sessions(self) -> list[str]:
        """Ids of all known sessions."""

    def _new_session(self, session_id: str) -> Session:
        seed = (Message.system(self.system_prompt),) if self.system_prompt else ()
        return Session(session_id=session_id, messages=seed)

    def lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock; hold it for the whole of a turn."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def exists(self, session_id: str) -> bool:
        return await self._load(session_id) is not None

    async def get(self, session_id: str) -> Session:
        """Load a session, creating and persisting it on first reference."""
        session = await self._load(session_id)
        if session is None:
            session = self._new_session(session_id)
            await self._save(session)
            logger.debug(f"[{session_id}] Created session")
        return session

    async def append(
        self,
        session_id: str,
        messages: Sequence[Message],
        awaiting_approval: Optional[bool] = None,
    ) -> Session:
        """
        Append messages to a session in one write.

        Unresolved tool calls may only be stored while the session awaits
        approval, so a request and its flag must be written together.

        Args:
            session_id: Session to extend.
            messages: Messages to add, in order.
            awaiting_approval: New approval flag; None keeps the current one.

        Raises:
            ValueError: If the result would break history ordering.
            StoreFailure: If the backend cannot persist the session.
        """
        session = await self.get(session_id)
        if awaiting_approval is None:
            awaiting_approval = session.awaiting_approval
        updated = session.messages + tuple(messages)
        validate_history(updated, allow_pending=awaiting_approval)
        session = Session(session_id, updated, awaiting_approval)
        await self._save(session)
        return session

    async def set_awaiting_approval(self, session_id: str, flag: bool) -> Session:
        return await self.append(session_id, [], awaiting_approval=flag)

    async def checkpoint(self, session_id: str) -> dict:
        """Export a session as a JSON-compatible snapshot."""
        session = await self.get(session_id)
        return session.to_snapshot()

    async def restore(self, session_id: str, snapshot: dict) -> Session:
        """
        Replace a session's state with a snapshot.

        Raises:
            StoreFailure: If the snapshot is invalid or cannot be persisted.
        """
        session = Session.from_snapshot(session_id, snapshot)
        await self._save(session)
        logger.info(f"[{session_id}] Restored session with {len(session.messages)} messages")
        return session


class InMemorySessionStore(SessionStore):
    """Process-local store; state is lost on exit."""

    def __init__(self, system_prompt: Optional[str] = None):
        super().__init__(system_prompt)
        self._sessions: dict[str, Session] = {}

    async def _load(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def _save(self, session: Session) -> None:
        self._sessions[session.session_id] = session

    async def list_sessions(self) -> list[str]:
        return list(self._sessions)


class FileSessionStore(SessionStore):
    """
    One JSON document per session under ``directory``.

    Writes go to a temporary file that atomically replaces the previous
    document, so a crash never leaves a half-written session behind.
    """

    SUFFIX = ".json"

    def __init__(self, directory: str, system_prompt: Optional[str] = None):
        super().__init__(system_prompt)
        self.directory = Path(directory)

    def _path(self, session_id: str) -> Path:
        return self.directory / f"{quote(session_id, safe='')}{self.SUFFIX}"

    def _read(self, session_id: str) -> Optional[Session]:
        path = self._path(session_id)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise StoreFailure(f"Failed to read session file {path}: {e}", session_id) from e
        return Session.from_snapshot(session_id, data)

    def _write(self, session: Session) -> None:
        path = self._path(session.session_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(session.to_snapshot(), f, ensure_ascii=False, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreFailure(
                f"Failed to write session file {path}: {e}", session.session_id
            ) from e

    async def _load(self, session_id: str) -> Optional[Session]:
        return await asyncio.to_thread(self._read, session_id)

    async def _save(self, session: Session) -> None:
        await asyncio.to_thread(self._write, session)

    async def list_sessions(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            unquote(p.name[: -len(self.SUFFIX)])
            for p in self.directory.glob(f"*{self.SUFFIX}")
        )


def create_session_store(config: StoreConfig, system_prompt: Optional[str] = None) -> SessionStore:
    """Pick the backend named in configuration."""
    if config.backend == "memory":
        return InMemorySessionStore(system_prompt)
    if config.backend == "file":
        return FileSessionStore(config.path, system_prompt)
    raise ValueError(f"Unknown session store backend: {config.backend!r}")
