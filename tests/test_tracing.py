import logging

from rag_chat.app.dependencies import get_tracer
from rag_chat.config import settings
from rag_chat.services.tracing import RunTracer


class RecordingClient:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def create_run(self, name, inputs, run_type, **kwargs):
        self.calls.append({"name": name, "inputs": inputs, "run_type": run_type, **kwargs})
        if self.fail:
            raise ConnectionError("tracing endpoint unreachable")


def test_runs_are_sent_to_the_tracing_client():
    client = RecordingClient()
    tracer = RunTracer(client=client, project_name="rag-chat-tests")

    tracer.trace_run("chat_interaction", inputs={"session_id": "s1"}, outputs={"vector_store_hits": 2})
    tracer.trace_run("vector_search_error", inputs={"session_id": "s1"}, error=RuntimeError("index offline"))
    tracer.flush(timeout=5)

    assert [call["name"] for call in client.calls] == ["chat_interaction", "vector_search_error"]
    first, second = client.calls
    assert first["run_type"] == "tool"
    assert first["inputs"] == {"session_id": "s1"}
    assert first["outputs"] == {"vector_store_hits": 2}
    assert first["error"] is None
    assert first["project_name"] == "rag-chat-tests"
    assert first["start_time"] == first["end_time"]
    assert second["error"] == "index offline"


def test_client_failure_is_logged_and_run_is_kept(caplog):
    tracer = RunTracer(client=RecordingClient(fail=True))

    with caplog.at_level(logging.INFO, logger="rag_chat.services.tracing"):
        tracer.trace_run("chat_interaction", inputs={"session_id": "s1"})
        tracer.flush(timeout=5)

    assert len(tracer.runs("chat_interaction")) == 1
    assert "[trace] chat_interaction" in caplog.text
    assert "tracing endpoint unreachable" in caplog.text


def test_without_client_runs_stay_local():
    tracer = RunTracer(max_runs=2)

    for i in range(3):
        tracer.trace_run(f"run_{i}", inputs={})
    tracer.flush()

    assert [run.name for run in tracer.runs()] == ["run_1", "run_2"]


def test_tracer_uses_langsmith_only_when_a_key_is_set(monkeypatch):
    monkeypatch.setattr(settings, "LANGSMITH_API_KEY", None)
    assert get_tracer.__wrapped__().client is None

    monkeypatch.setattr(settings, "LANGSMITH_API_KEY", "ls-test-key")
    monkeypatch.setattr(settings, "LANGSMITH_PROJECT", "rag-chat-tests")
    tracer = get_tracer.__wrapped__()

    assert tracer.client is not None
    assert tracer.project_name == "rag-chat-tests"
