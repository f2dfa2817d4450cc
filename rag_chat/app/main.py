import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile, status
from fastapi.responses import StreamingResponse

from ..config import settings
from ..domain.models import UploadedFile
from ..infrastructure.database.connection import init_db
from ..ingestion.router import ALLOWED_MEDIA_TYPES
from ..logging_config import configure_logging
from ..services.chat import ChatService
from ..services.exceptions import (
    EmptyTurnError,
    PersistenceError,
    StreamAlreadySubscribedError,
    StreamFailedError,
    StreamNotFoundError,
)
from ..streaming.broker import StreamBroker
from .dependencies import get_chat_service, get_stream_broker, get_tracer
from .schemas import (
    HealthResponse,
    HistoryEntryRead,
    SessionSummary,
    StartChatResponse,
    StreamChunk,
    StreamError,
    TitleResponse,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    if settings.HISTORY_BACKEND == "sql":
        init_db()
    logger.info(f"RAG chat backend started | history_backend={settings.HISTORY_BACKEND}")
    yield
    # Let running turns finish persisting before the process exits
    if get_chat_service.cache_info().currsize:
        await get_chat_service().wait_for_pending()
    if get_tracer.cache_info().currsize:
        await asyncio.to_thread(get_tracer().flush, 10.0)


app = FastAPI(title="RAG Chat Backend", lifespan=lifespan)

# --- Endpoints ---

@app.post("/chat", response_model=StartChatResponse)
async def start_chat(
    message: Optional[str] = Form(None),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    owner_id: Optional[str] = Form(None, alias="ownerId"),
    files: Optional[List[UploadFile]] = File(None),
    service: ChatService = Depends(get_chat_service),
):
    """
    Starts a chat turn. The answer is not in this response: connect to
    /chat/stream/{streamId} to receive it.
    """
    uploads = await _read_uploads(files or [])
    try:
        handle = await service.start_turn(
            message=message,
            session_id=session_id,
            files=uploads,
            owner_id=owner_id,
        )
    except EmptyTurnError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return StartChatResponse(stream_id=handle.stream_id, session_id=handle.session_id)


@app.get("/chat/stream/{stream_id}")
async def stream_chat(
    stream_id: str,
    broker: StreamBroker = Depends(get_stream_broker),
):
    """
    Server-Sent Events relay for one turn. Every fragment arrives as a
    `data: {"chunk": ...}` frame; the stream ends with an `event: done` or
    an `event: error` frame.
    """
    try:
        fragments = broker.subscribe(stream_id)
    except StreamNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StreamAlreadySubscribedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return StreamingResponse(
        _sse_events(fragments),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/chat/history/{session_id}", response_model=List[HistoryEntryRead])
async def get_history(
    session_id: str,
    limit: Optional[int] = None,
    service: ChatService = Depends(get_chat_service),
):
    try:
        history = await service.get_history(session_id, limit=limit)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return [
        HistoryEntryRead(
            timestamp=entry.timestamp,
            user_message=entry.user_message,
            llm_response=entry.llm_response,
        )
        for entry in history
    ]


@app.get("/chat/sessions", response_model=List[SessionSummary])
async def list_sessions(
    owner_id: Optional[str] = None,
    service: ChatService = Depends(get_chat_service),
):
    try:
        records = await service.list_sessions(owner_id)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return [
        SessionSummary(session_id=record.session_id, title=record.title, created_at=record.created_at)
        for record in records
    ]


@app.get("/chat/sessions/{session_id}/title", response_model=TitleResponse)
async def get_title(
    session_id: str,
    service: ChatService = Depends(get_chat_service),
):
    try:
        title = await service.get_title(session_id)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return TitleResponse(session_id=session_id, title=title)


@app.get("/health", response_model=HealthResponse)
def health(broker: StreamBroker = Depends(get_stream_broker)):
    return HealthResponse(status="ok", active_streams=broker.active_count())


# --- Helpers ---

async def _read_uploads(files: List[UploadFile]) -> List[UploadedFile]:
    """Applies the upload allow-list and limits, then reads every file into memory."""
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files: at most {settings.MAX_UPLOAD_FILES} per message",
        )

    uploads = []
    for upload in files:
        media_type = upload.content_type or ""
        if media_type not in ALLOWED_MEDIA_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File type {media_type or 'unknown'} not supported",
            )

        data = await upload.read()
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File {upload.filename} exceeds {settings.MAX_UPLOAD_BYTES} bytes",
            )
        uploads.append(UploadedFile(filename=upload.filename or "upload", media_type=media_type, data=data))
    return uploads


async def _sse_events(fragments: AsyncIterator[str]) -> AsyncIterator[str]:
    try:
        async for fragment in fragments:
            yield f"data: {StreamChunk(chunk=fragment).model_dump_json()}\n\n"
    except StreamFailedError as e:
        yield f"event: error\ndata: {StreamError(error=str(e)).model_dump_json()}\n\n"
        return
    yield "event: done\ndata: {}\n\n"
