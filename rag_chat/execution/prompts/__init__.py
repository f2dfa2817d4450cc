from rag_chat.execution.prompts.context_prompt import build_context_prompt
from rag_chat.execution.prompts.title import build_title_prompt, strip_title_quotes

__all__ = [
    "build_context_prompt",
    "build_title_prompt",
    "strip_title_quotes",
]
