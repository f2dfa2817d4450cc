"""
Engine - Turn Orchestration Layer

The WorkflowOrchestrator is the stateless state machine that runs one chat
turn: it ingests this turn's uploads into the prompt, retrieves prior session
context, streams the answer and, on a session's first turn, asks for a title.
-----------------------------------------------

Stage flow:
    INGESTING -> RETRIEVING -> GENERATING -> TITLING (first turn only) -> DONE
Any stage may fall through to FAILED, but only GENERATING is allowed to:
1. Indexing uploads is deferred to a detached task. The turn never waits
   for it and a failure there is only traced.
2. A failed retrieval degrades to an empty context.
3. A failed title request leaves the title unset.
4. A failed generation aborts the turn with GenerationError.
"""

import asyncio
import logging
from enum import Enum, auto
from typing import Callable, List, Optional, Set

from ..domain.models import ProcessedContent
from ..index.interface import ContextIndex
from ..llm.interface import LLMProvider
from ..services.exceptions import GenerationError
from ..services.tracing import RunTracer
from ..state.models import WorkflowState
from .prompts import build_context_prompt, build_title_prompt, strip_title_quotes

logger = logging.getLogger(__name__)

FALLBACK_QUERY = "summarize the provided context"

ChunkCallback = Callable[[str], None]


class TurnStage(Enum):
    """Where a turn currently is. DONE and FAILED are terminal."""

    INGESTING = auto()
    RETRIEVING = auto()
    GENERATING = auto()
    TITLING = auto()
    DONE = auto()
    FAILED = auto()


class WorkflowOrchestrator:
    def __init__(
        self,
        index: ContextIndex,
        llm_provider: LLMProvider,
        tracer: RunTracer,
        upload_context_limit: int = 5,
        top_k: int = 5,
    ):
        self.index = index
        self.llm = llm_provider
        self.tracer = tracer
        self.upload_context_limit = upload_context_limit
        self.top_k = top_k
        # Strong references so detached indexing tasks are not garbage collected
        self._background_tasks: Set[asyncio.Task] = set()

    async def execute(
        self, state: WorkflowState, on_chunk: Optional[ChunkCallback] = None
    ) -> WorkflowState:
        """
        Runs one turn and returns the finalized state.
        Raises GenerationError when the answer could not be produced.
        """
        stage = TurnStage.INGESTING
        try:
            # 1. Ingest: this turn's uploads become primary prompt context
            uploads_context = self._ingest(state)

            # 2. Retrieve prior session context
            stage = TurnStage.RETRIEVING
            retrieved = await self._retrieve(state)
            state = state.model_copy(update={"retrieved_context": retrieved})

            # 3. Generate (fatal on failure)
            stage = TurnStage.GENERATING
            prompt = build_context_prompt(state, new_uploads_context=uploads_context)
            response = await self._generate(prompt, on_chunk)

            # 4. Title the session on its first turn
            title = None
            if state.is_first_turn:
                stage = TurnStage.TITLING
                title = await self._generate_title(state.text_input or "", response)

            stage = TurnStage.DONE
        except Exception as e:
            logger.error(f"Turn failed | session={state.session_id} | stage={stage.name} | error={e}")
            self.tracer.trace_run(
                "workflow_execution_error",
                inputs={"session_id": state.session_id, "stage": stage.name},
                error=e,
            )
            if isinstance(e, GenerationError):
                raise
            raise GenerationError(f"Workflow failed during {stage.name}: {e}") from e

        self.tracer.trace_run(
            "workflow_execution",
            inputs={
                "session_id": state.session_id,
                "has_message": bool(state.text_input),
                "uploads": len(state.uploaded_content),
            },
            outputs={
                "response_chars": len(response),
                "retrieved": len(retrieved),
                "title": title,
            },
        )
        return state.model_copy(update={"final_response": response, "title": title})

    # ==========================================================================
    # Stages
    # ==========================================================================

    def _ingest(self, state: WorkflowState) -> List[str]:
        uploads = state.uploaded_content
        if not uploads:
            return []

        self._schedule_indexing(uploads, state.session_id)
        return [item.content for item in uploads[: self.upload_context_limit]]

    async def _retrieve(self, state: WorkflowState) -> List[str]:
        query = state.text_input or FALLBACK_QUERY
        try:
            return await self.index.query(query, state.session_id, k=self.top_k)
        except Exception as e:
            logger.warning(f"Retrieval degraded to empty context | session={state.session_id} | error={e}")
            self.tracer.trace_run(
                "vector_search_error",
                inputs={"session_id": state.session_id, "query": query},
                error=e,
            )
            return []

    async def _generate(self, prompt: str, on_chunk: Optional[ChunkCallback]) -> str:
        fragments: List[str] = []
        try:
            async for fragment in self.llm.stream(prompt):
                if not fragment:
                    continue
                fragments.append(fragment)
                if on_chunk is not None:
                    on_chunk(fragment)
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"Streaming generation failed: {e}") from e
        return "".join(fragments)

    async def _generate_title(self, user_message: str, response: str) -> Optional[str]:
        try:
            raw = await self.llm.complete(build_title_prompt(user_message, response))
        except Exception as e:
            logger.warning(f"Title generation failed, leaving title unset | error={e}")
            return None
        return strip_title_quotes(raw) or None

    # ==========================================================================
    # Deferred Indexing
    # ==========================================================================

    def _schedule_indexing(self, chunks: List[ProcessedContent], session_id: str) -> None:
        task = asyncio.create_task(self._index_uploads(chunks, session_id))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _index_uploads(self, chunks: List[ProcessedContent], session_id: str) -> None:
        try:
            await self.index.index(chunks, session_id)
            logger.info(f"Indexed {len(chunks)} chunks | session={session_id}")
        except Exception as e:
            logger.warning(f"Deferred indexing failed | session={session_id} | error={e}")
            self.tracer.trace_run(
                "vector_store_deferred_error",
                inputs={"session_id": session_id, "chunks": len(chunks)},
                error=e,
            )

    async def wait_for_background(self) -> None:
        """Awaits all deferred indexing tasks still in flight."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))
