"""
Chat Service - Application Orchestration Layer

This service is the entry point for all conversation operations. It owns
session identity, windows the durable history into each turn, runs the turn
in the background while its answer streams through the StreamBroker, and
appends the finished exchange to the session history.

Turn lifecycle:
1. start_turn() validates input, opens a stream channel and returns at once.
2. A background task loads history, ingests files and runs the orchestrator,
   relaying every fragment to the channel as it is generated.
3. On success the exchange is appended to the history and the title, if one
   was produced, is stored unless the session already has one.
4. The channel is terminated exactly once, whatever happened above.
"""

import asyncio
import contextlib
import logging
import time
import uuid
import weakref
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from ..domain.models import ProcessedContent, UploadedFile
from ..execution.engine import WorkflowOrchestrator
from ..ingestion.interface import ContentIngestor
from ..repositories.history import HistoryRepository
from ..state.models import ChatHistoryEntry, SessionHistoryRecord, WorkflowState
from ..streaming.broker import StreamBroker
from .exceptions import EmptyTurnError
from .tracing import RunTracer

logger = logging.getLogger(__name__)

NO_MESSAGE_PLACEHOLDER = "No message provided"
NO_RESPONSE_PLACEHOLDER = "No response generated"


@dataclass(frozen=True)
class TurnHandle:
    stream_id: str
    session_id: str


class ChatService:
    def __init__(
        self,
        history_repository: HistoryRepository,
        ingestor: ContentIngestor,
        orchestrator: WorkflowOrchestrator,
        broker: StreamBroker,
        tracer: RunTracer,
        history_window: int = 3,
        serialize_history_writes: bool = False,
    ):
        self.history_repo = history_repository
        self.ingestor = ingestor
        self.orchestrator = orchestrator
        self.broker = broker
        self.tracer = tracer
        self.history_window = history_window
        self.serialize_history_writes = serialize_history_writes

        self._turn_tasks: Set[asyncio.Task] = set()
        # Entries vanish once no turn holds or awaits the lock
        self._session_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ==========================================================================
    # Public Operations
    # ==========================================================================

    async def start_turn(
        self,
        message: Optional[str] = None,
        session_id: Optional[str] = None,
        files: Optional[Sequence[UploadedFile]] = None,
        owner_id: Optional[str] = None,
    ) -> TurnHandle:
        """
        Begins a turn and returns as soon as its stream channel exists.
        Raises EmptyTurnError when there is neither a message nor a file.
        """
        message = message.strip() if message else None
        files = list(files or [])
        if not message and not files:
            raise EmptyTurnError("Either a message or at least one file is required")

        session_id = session_id or str(uuid.uuid4())
        stream_id = self.broker.open()

        task = asyncio.create_task(
            self._run_turn(stream_id, session_id, message or None, files, owner_id)
        )
        self._turn_tasks.add(task)
        task.add_done_callback(self._turn_tasks.discard)

        logger.info(f"Turn started | session={session_id} | stream={stream_id} | files={len(files)}")
        return TurnHandle(stream_id=stream_id, session_id=session_id)

    async def get_history(
        self, session_id: str, limit: Optional[int] = None
    ) -> List[ChatHistoryEntry]:
        """Returns the session history, or only its `limit` most recent entries."""
        history = await self.history_repo.get(session_id)
        if limit is not None:
            return history[-limit:] if limit > 0 else []
        return history

    async def get_title(self, session_id: str) -> Optional[str]:
        record = await self.history_repo.get_record(session_id)
        return record.title if record else None

    async def list_sessions(self, owner_id: Optional[str]) -> List[SessionHistoryRecord]:
        return await self.history_repo.list_sessions(owner_id)

    async def wait_for_pending(self) -> None:
        """Awaits in-flight turns and their deferred indexing."""
        if self._turn_tasks:
            await asyncio.gather(*list(self._turn_tasks), return_exceptions=True)
        await self.orchestrator.wait_for_background()

    # ==========================================================================
    # Background Turn
    # ==========================================================================

    async def _run_turn(
        self,
        stream_id: str,
        session_id: str,
        message: Optional[str],
        files: List[UploadedFile],
        owner_id: Optional[str],
    ) -> None:
        started = time.perf_counter()
        try:
            # 1. Load Context
            history, is_first_turn = await self._load_window(session_id)
            images, documents = await self._ingest_files(files, session_id)

            state = WorkflowState(
                session_id=session_id,
                text_input=message,
                owner_id=owner_id,
                images=images,
                documents=documents,
                chat_history=history,
                is_first_turn=is_first_turn,
            )

            # 2. Execute (fragments go live to the subscriber)
            result = await self.orchestrator.execute(
                state, on_chunk=lambda chunk: self.broker.publish(stream_id, chunk)
            )

            self.tracer.trace_run(
                "chat_interaction",
                inputs={"session_id": session_id, "message": message},
                outputs={
                    "processed_files": len(files),
                    "processing_time_ms": round((time.perf_counter() - started) * 1000),
                    "vector_store_hits": len(result.retrieved_context),
                },
            )

            # 3. Save
            await self._persist_turn(result)
        except Exception as e:
            logger.error(f"Turn failed | session={session_id} | stream={stream_id} | error={e}")
            self.tracer.trace_run("chat_service_error", inputs={"session_id": session_id}, error=e)
            self.broker.fail(stream_id, e)
        finally:
            # No-op if the channel was already failed above
            self.broker.complete(stream_id)

    async def _load_window(self, session_id: str) -> Tuple[List[ChatHistoryEntry], bool]:
        """
        Returns the prompt window and whether this is the session's first turn.
        An unreadable history never counts as a first turn.
        """
        try:
            history = await self.history_repo.get(session_id)
        except Exception as e:
            logger.warning(f"Could not load history, continuing without it | session={session_id} | error={e}")
            return [], False
        is_first_turn = not history
        if self.history_window <= 0:
            return [], is_first_turn
        return history[-self.history_window:], is_first_turn

    async def _ingest_files(
        self, files: List[UploadedFile], session_id: str
    ) -> Tuple[List[ProcessedContent], List[ProcessedContent]]:
        """Extracts all files concurrently. A file that fails is logged and skipped."""
        results = await asyncio.gather(
            *(self.ingestor.extract(upload) for upload in files), return_exceptions=True
        )

        images: List[ProcessedContent] = []
        documents: List[ProcessedContent] = []
        for upload, result in zip(files, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(f"Skipping file '{upload.filename}' | session={session_id} | error={result}")
                self.tracer.trace_run(
                    "file_processing_error",
                    inputs={"session_id": session_id, "filename": upload.filename},
                    error=result,
                )
                continue
            for chunk in result:
                (images if chunk.type == "image" else documents).append(chunk)
        return images, documents

    async def _persist_turn(self, result: WorkflowState) -> None:
        """
        Appends the exchange to the durable history. Failures are logged and
        never reach the stream; the answer has already been delivered.
        """
        session_id = result.session_id
        entry = ChatHistoryEntry(
            user_message=result.text_input or NO_MESSAGE_PLACEHOLDER,
            llm_response=result.final_response or NO_RESPONSE_PLACEHOLDER,
        )

        try:
            async with self._history_lock(session_id):
                # Re-read: the window loaded at turn start may be stale by now
                history = await self.history_repo.get(session_id)
                await self.history_repo.put(session_id, [*history, entry], owner_id=result.owner_id)

            if result.title:
                stored = await self.history_repo.set_title_if_absent(session_id, result.title)
                if stored:
                    logger.info(f"Session titled | session={session_id} | title={result.title!r}")
        except Exception as e:
            logger.error(f"Failed to persist turn | session={session_id} | error={e}")
            self.tracer.trace_run("history_persistence_error", inputs={"session_id": session_id}, error=e)

    def _history_lock(self, session_id: str):
        if not self.serialize_history_writes:
            return contextlib.nullcontext()
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock
