"""
Prompt building for the answer generation stage.

Renders a WorkflowState into the single instruction string sent to the
generator. Sections always appear in the same order and any of them may be
absent; the opening and closing instructions are always present.
"""

from typing import List, Optional, Sequence

from ...state.models import ChatHistoryEntry, WorkflowState

# =============================================================================
# TEMPLATES
# =============================================================================

PREAMBLE = "You are a helpful AI assistant.\n\n"

HISTORY_HEADER = "Here is the recent conversation history:\n"
HISTORY_ENTRY = "User: {user_message}\nAssistant: {llm_response}\nTimestamp: {timestamp}\n"

CONTEXT_SEPARATOR = "\n---\n"

NEW_UPLOADS_BLOCK = (
    "The user has just uploaded new files in this message. "
    "Treat this as primary context:\n---\n{context}\n---\n\n"
)

RETRIEVED_CONTEXT_BLOCK = (
    "Additionally, here is relevant context retrieved from previously "
    "uploaded files for this session:\n---\n{context}\n---\n\n"
)

USER_MESSAGE = 'The user has just sent this message: "{message}"\n\n'

NO_MESSAGE_WITH_UPLOADS = (
    "No explicit message provided. Summarize or respond based on the newly "
    "uploaded files and any relevant context.\n\n"
)
NO_MESSAGE = (
    "No explicit message provided. Summarize or respond based on the "
    "available context.\n\n"
)

CLOSING_INSTRUCTION = (
    "Based on all the information provided (especially the most recent "
    "messages), generate a comprehensive and relevant response."
)


# =============================================================================
# BUILDER FUNCTIONS
# =============================================================================

def build_context_prompt(
    state: WorkflowState, new_uploads_context: Optional[Sequence[str]] = None
) -> str:
    """Build the generation prompt from history, uploads, retrieval and the message."""
    uploads = list(new_uploads_context or [])
    sections = [
        PREAMBLE,
        _build_history_section(state.chat_history),
        _build_context_block(NEW_UPLOADS_BLOCK, uploads),
        _build_context_block(RETRIEVED_CONTEXT_BLOCK, state.retrieved_context),
        _build_message_section(state.text_input, has_uploads=bool(uploads)),
        CLOSING_INSTRUCTION,
    ]
    return "".join(sections)


def _build_history_section(history: List[ChatHistoryEntry]) -> str:
    if not history:
        return ""
    entries = "".join(
        HISTORY_ENTRY.format(
            user_message=entry.user_message,
            llm_response=entry.llm_response,
            timestamp=entry.timestamp,
        )
        for entry in history
    )
    return HISTORY_HEADER + entries + "\n"


def _build_context_block(template: str, context: Sequence[str]) -> str:
    if not context:
        return ""
    return template.format(context=CONTEXT_SEPARATOR.join(context))


def _build_message_section(message: Optional[str], has_uploads: bool) -> str:
    if message:
        return USER_MESSAGE.format(message=message)
    return NO_MESSAGE_WITH_UPLOADS if has_uploads else NO_MESSAGE
