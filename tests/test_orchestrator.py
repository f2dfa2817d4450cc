import asyncio

import pytest

from fakes import FakeLLM, RecordingIndex, document_chunk, image_chunk
from rag_chat.execution.engine import FALLBACK_QUERY, WorkflowOrchestrator
from rag_chat.services.exceptions import GenerationError
from rag_chat.services.tracing import RunTracer
from rag_chat.state.models import ChatHistoryEntry, WorkflowState


def _orchestrator(llm=None, index=None, tracer=None, **kwargs):
    return WorkflowOrchestrator(
        index=index or RecordingIndex(),
        llm_provider=llm or FakeLLM(),
        tracer=tracer or RunTracer(),
        **kwargs,
    )


def _run(orchestrator, state, on_chunk=None):
    async def scenario():
        result = await orchestrator.execute(state, on_chunk=on_chunk)
        await orchestrator.wait_for_background()
        return result

    return asyncio.run(scenario())


def test_streamed_fragments_accumulate_into_final_response():
    chunks = []
    orchestrator = _orchestrator(llm=FakeLLM(fragments=["Hel", "lo, ", "world"]))

    result = _run(orchestrator, WorkflowState(session_id="s1", text_input="hi"), chunks.append)

    assert chunks == ["Hel", "lo, ", "world"]
    assert result.final_response == "Hello, world"


def test_empty_fragments_are_not_forwarded():
    chunks = []
    orchestrator = _orchestrator(llm=FakeLLM(fragments=["a", "", "b"]))

    result = _run(orchestrator, WorkflowState(session_id="s1", text_input="hi"), chunks.append)

    assert chunks == ["a", "b"]
    assert result.final_response == "ab"


def test_input_state_is_not_mutated():
    state = WorkflowState(session_id="s1", text_input="hi")

    result = _run(_orchestrator(), state)

    assert state.final_response is None
    assert result is not state


def test_retrieval_uses_message_scoped_to_session():
    index = RecordingIndex(results=["ctx one", "ctx two"])
    llm = FakeLLM()

    result = _run(_orchestrator(llm=llm, index=index), WorkflowState(session_id="s42", text_input="budget?"))

    assert index.queries == [("budget?", "s42", 5)]
    assert result.retrieved_context == ["ctx one", "ctx two"]
    assert "ctx one\n---\nctx two" in llm.stream_prompts[0]


def test_retrieval_without_message_uses_fallback_query():
    index = RecordingIndex()
    state = WorkflowState(session_id="s1", documents=[document_chunk("doc text")])

    _run(_orchestrator(index=index), state)

    assert index.queries[0][0] == FALLBACK_QUERY


def test_retrieval_failure_degrades_to_empty_context():
    tracer = RunTracer()
    orchestrator = _orchestrator(index=RecordingIndex(fail_query=True), tracer=tracer)

    result = _run(orchestrator, WorkflowState(session_id="s1", text_input="hi"))

    assert result.retrieved_context == []
    assert result.final_response == "Hello, world"
    assert len(tracer.runs("vector_search_error")) == 1


def test_generation_failure_is_raised_and_traced():
    tracer = RunTracer()
    chunks = []
    orchestrator = _orchestrator(llm=FakeLLM(fail_stream_after=1), tracer=tracer)

    with pytest.raises(GenerationError):
        _run(orchestrator, WorkflowState(session_id="s1", text_input="hi"), chunks.append)

    assert chunks == ["Hel"]
    assert len(tracer.runs("workflow_execution_error")) == 1
    assert tracer.runs("workflow_execution") == []


def test_only_first_uploads_become_primary_context_but_all_are_indexed():
    index = RecordingIndex()
    llm = FakeLLM()
    documents = [document_chunk(f"DOC-{i}") for i in range(6)]
    images = [image_chunk("IMAGE-0")]
    state = WorkflowState(session_id="s1", text_input="hi", images=images, documents=documents)

    _run(_orchestrator(llm=llm, index=index), state)

    prompt = llm.stream_prompts[0]
    # Images come first, so the cut-off of five drops DOC-4 and DOC-5
    assert "IMAGE-0" in prompt
    for i in range(4):
        assert f"DOC-{i}" in prompt
    assert "DOC-4" not in prompt
    assert "DOC-5" not in prompt

    assert len(index.indexed) == 1
    session_id, chunks = index.indexed[0]
    assert session_id == "s1"
    assert [c.content for c in chunks] == ["IMAGE-0"] + [f"DOC-{i}" for i in range(6)]


def test_deferred_indexing_failure_does_not_fail_turn():
    tracer = RunTracer()
    orchestrator = _orchestrator(index=RecordingIndex(fail_index=True), tracer=tracer)
    state = WorkflowState(session_id="s1", text_input="hi", documents=[document_chunk("x")])

    result = _run(orchestrator, state)

    assert result.final_response == "Hello, world"
    assert len(tracer.runs("vector_store_deferred_error")) == 1


def test_first_turn_gets_title_with_quotes_stripped():
    llm = FakeLLM(title='"Greeting The World"')

    result = _run(_orchestrator(llm=llm), WorkflowState(session_id="s1", text_input="hi", is_first_turn=True))

    assert result.title == "Greeting The World"
    assert "User Message: hi" in llm.complete_prompts[0]
    assert "AI response: Hello, world" in llm.complete_prompts[0]


def test_later_turns_are_not_titled():
    llm = FakeLLM()
    history = [ChatHistoryEntry(user_message="earlier", llm_response="reply")]

    result = _run(_orchestrator(llm=llm), WorkflowState(session_id="s1", text_input="hi", chat_history=history))

    assert result.title is None
    assert llm.complete_prompts == []


def test_empty_window_alone_does_not_make_a_first_turn():
    llm = FakeLLM()

    result = _run(_orchestrator(llm=llm), WorkflowState(session_id="s1", text_input="hi", chat_history=[]))

    assert result.title is None
    assert llm.complete_prompts == []


def test_title_failure_leaves_title_unset():
    result = _run(
        _orchestrator(llm=FakeLLM(fail_complete=True)),
        WorkflowState(session_id="s1", text_input="hi", is_first_turn=True),
    )

    assert result.title is None
    assert result.final_response == "Hello, world"
