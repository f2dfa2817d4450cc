import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

# State & Infra Imports
from ..state.models import ChatHistoryEntry, SessionHistoryRecord
from ..services.exceptions import PersistenceError
from ..infrastructure.blob.store import BlobStore
from ..infrastructure.database.tables import ChatHistoryDBModel
from ..infrastructure.database.connection import engine

logger = logging.getLogger(__name__)

# Owner id used by unauthenticated demo clients; never stored
DEMO_OWNER_ID = "demo"

_history_adapter = TypeAdapter(List[ChatHistoryEntry])


def normalize_owner_id(owner_id: Optional[str]) -> Optional[str]:
    if not owner_id or owner_id == DEMO_OWNER_ID:
        return None
    return owner_id


def serialize_history(entries: Sequence[ChatHistoryEntry]) -> bytes:
    payload = [entry.model_dump(by_alias=True) for entry in entries]
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


def deserialize_history(data: bytes) -> List[ChatHistoryEntry]:
    try:
        return _history_adapter.validate_json(data)
    except ValidationError as e:
        raise PersistenceError(f"Stored history is malformed: {e}") from e


class HistoryRepository(ABC):
    """
    Defines how the application accesses session histories.

    A history is an ordered, append-only list of ChatHistoryEntry stored as
    one blob per session, plus a metadata record pointing at it. Callers
    append by reading the full list, adding an entry and putting it back.
    There is no compare-and-swap: two concurrent writers on one session race
    and the last put wins.
    """

    @abstractmethod
    async def get(self, session_id: str) -> List[ChatHistoryEntry]:
        """Returns the full history, oldest first, or [] for an unknown session."""
        pass

    @abstractmethod
    async def put(
        self,
        session_id: str,
        entries: Sequence[ChatHistoryEntry],
        owner_id: Optional[str] = None,
    ) -> str:
        """Replaces the stored history and upserts the metadata record. Returns the blob location."""
        pass

    @abstractmethod
    async def set_title_if_absent(self, session_id: str, title: str) -> bool:
        """Sets the title unless one is already stored. Returns True if it was written."""
        pass

    @abstractmethod
    async def get_record(self, session_id: str) -> Optional[SessionHistoryRecord]:
        pass

    @abstractmethod
    async def list_sessions(self, owner_id: Optional[str]) -> List[SessionHistoryRecord]:
        """Returns the owner's sessions, most recently updated first."""
        pass


class InMemoryHistoryRepository(HistoryRepository):
    """
    Uses in-memory dictionaries for history storage for testing/dev purposes.
    """

    def __init__(self):
        self._histories: Dict[str, List[ChatHistoryEntry]] = {}
        self._records: Dict[str, SessionHistoryRecord] = {}

    async def get(self, session_id: str) -> List[ChatHistoryEntry]:
        return list(self._histories.get(session_id, []))

    async def put(
        self,
        session_id: str,
        entries: Sequence[ChatHistoryEntry],
        owner_id: Optional[str] = None,
    ) -> str:
        location = f"memory://chat_history/{session_id}.json"
        self._histories[session_id] = list(entries)

        now = datetime.now(timezone.utc)
        owner = normalize_owner_id(owner_id)
        record = self._records.get(session_id)
        if record is None:
            self._records[session_id] = SessionHistoryRecord(
                session_id=session_id,
                history_blob_location=location,
                owner_id=owner,
                created_at=now,
                updated_at=now,
            )
        else:
            update = {"history_blob_location": location, "updated_at": now}
            if owner is not None:
                update["owner_id"] = owner
            self._records[session_id] = record.model_copy(update=update)
        return location

    async def set_title_if_absent(self, session_id: str, title: str) -> bool:
        record = self._records.get(session_id)
        if record is None or record.title or not title:
            return False
        self._records[session_id] = record.model_copy(update={"title": title})
        return True

    async def get_record(self, session_id: str) -> Optional[SessionHistoryRecord]:
        return self._records.get(session_id)

    async def list_sessions(self, owner_id: Optional[str]) -> List[SessionHistoryRecord]:
        owner = normalize_owner_id(owner_id)
        records = [r for r in self._records.values() if r.owner_id == owner]
        return sorted(records, key=lambda r: r.updated_at, reverse=True)


class SqlHistoryRepository(HistoryRepository):
    """
    History blobs in a BlobStore, pointers and titles in the `chat_history` table.

    SQLModel sessions are synchronous, so every operation runs in a worker
    thread to keep the event loop free while turns are streaming.
    """

    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    async def get(self, session_id: str) -> List[ChatHistoryEntry]:
        return await asyncio.to_thread(self._get_sync, session_id)

    async def put(
        self,
        session_id: str,
        entries: Sequence[ChatHistoryEntry],
        owner_id: Optional[str] = None,
    ) -> str:
        return await asyncio.to_thread(self._put_sync, session_id, list(entries), owner_id)

    async def set_title_if_absent(self, session_id: str, title: str) -> bool:
        return await asyncio.to_thread(self._set_title_sync, session_id, title)

    async def get_record(self, session_id: str) -> Optional[SessionHistoryRecord]:
        return await asyncio.to_thread(self._get_record_sync, session_id)

    async def list_sessions(self, owner_id: Optional[str]) -> List[SessionHistoryRecord]:
        return await asyncio.to_thread(self._list_sessions_sync, owner_id)

    # ==========================================================================
    # Blocking implementations
    # ==========================================================================

    def _get_sync(self, session_id: str) -> List[ChatHistoryEntry]:
        row = self._fetch_row(session_id)
        if row is None:
            return []

        data = self.blob_store.read(row.history_url)
        if data is None:
            logger.warning(f"History blob missing for session {session_id} at {row.history_url}")
            return []
        return deserialize_history(data)

    def _put_sync(
        self, session_id: str, entries: List[ChatHistoryEntry], owner_id: Optional[str]
    ) -> str:
        # Blob first, then the pointer. A crash in between leaves the old pointer valid.
        location = self.blob_store.write(f"chat_history/{session_id}.json", serialize_history(entries))
        owner = normalize_owner_id(owner_id)

        try:
            with Session(engine) as db:
                row = db.get(ChatHistoryDBModel, session_id)
                if row is None:
                    row = ChatHistoryDBModel(
                        session_id=session_id, history_url=location, owner_id=owner
                    )
                else:
                    row.history_url = location
                    row.updated_at = datetime.now(timezone.utc)
                    if owner is not None:
                        row.owner_id = owner
                db.add(row)
                db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to upsert history pointer for {session_id}: {e}") from e

        logger.debug(f"Saved {len(entries)} history entries for session {session_id}")
        return location

    def _set_title_sync(self, session_id: str, title: str) -> bool:
        if not title:
            return False
        try:
            with Session(engine) as db:
                row = db.get(ChatHistoryDBModel, session_id)
                if row is None or row.title:
                    return False
                row.title = title
                db.add(row)
                db.commit()
                return True
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store title for {session_id}: {e}") from e

    def _get_record_sync(self, session_id: str) -> Optional[SessionHistoryRecord]:
        row = self._fetch_row(session_id)
        return self._to_record(row) if row else None

    def _list_sessions_sync(self, owner_id: Optional[str]) -> List[SessionHistoryRecord]:
        owner = normalize_owner_id(owner_id)
        try:
            with Session(engine) as db:
                statement = select(ChatHistoryDBModel)
                if owner is None:
                    statement = statement.where(ChatHistoryDBModel.owner_id.is_(None))
                else:
                    statement = statement.where(ChatHistoryDBModel.owner_id == owner)
                statement = statement.order_by(ChatHistoryDBModel.updated_at.desc())
                return [self._to_record(row) for row in db.exec(statement).all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list sessions: {e}") from e

    def _fetch_row(self, session_id: str) -> Optional[ChatHistoryDBModel]:
        try:
            with Session(engine) as db:
                return db.get(ChatHistoryDBModel, session_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load history pointer for {session_id}: {e}") from e

    @staticmethod
    def _to_record(row: ChatHistoryDBModel) -> SessionHistoryRecord:
        return SessionHistoryRecord(
            session_id=row.session_id,
            history_blob_location=row.history_url,
            title=row.title,
            owner_id=row.owner_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
