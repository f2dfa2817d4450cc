"""
Run Tracing

Records named pipeline runs (successes and degraded failures) as structured
log records. The most recent runs are also kept in memory so operators and
tests can see what happened to a turn without scraping logs.

When a LangSmith client is configured, every run is also submitted to it as
a "tool" run. Submission happens on a single background thread so a slow or
unreachable tracing endpoint never delays a turn.
"""

import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class TraceRun:
    name: str
    inputs: Dict[str, Any]
    outputs: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RunTracer:
    def __init__(
        self,
        max_runs: int = 500,
        client: Optional[Any] = None,
        project_name: Optional[str] = None,
    ):
        """
        `client` is a langsmith.Client (or anything with the same create_run);
        None keeps tracing local to the logs.
        """
        self._runs: Deque[TraceRun] = deque(maxlen=max_runs)
        self.client = client
        self.project_name = project_name
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        if client is not None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="langsmith-trace")

    def trace_run(
        self,
        name: str,
        inputs: Dict[str, Any],
        outputs: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Records a run. Never raises."""
        try:
            run = TraceRun(
                name=name,
                inputs=dict(inputs),
                outputs=dict(outputs or {}),
                error=str(error) if error is not None else None,
            )
            self._runs.append(run)
            if error is not None:
                logger.warning(f"[trace] {name} failed | inputs={run.inputs} | error={run.error}")
            else:
                logger.info(f"[trace] {name} | inputs={run.inputs} | outputs={run.outputs}")

            if self._executor is not None:
                future = self._executor.submit(self._submit, run)
                self._pending.add(future)
                future.add_done_callback(self._pending.discard)
        except Exception as e:
            logger.error(f"Tracing error for run '{name}': {e}")

    def runs(self, name: Optional[str] = None) -> List[TraceRun]:
        if name is None:
            return list(self._runs)
        return [run for run in self._runs if run.name == name]

    def flush(self, timeout: Optional[float] = None) -> None:
        """Waits for submitted runs to reach the tracing client."""
        pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def _submit(self, run: TraceRun) -> None:
        try:
            self.client.create_run(
                name=run.name,
                inputs=run.inputs,
                run_type="tool",
                outputs=run.outputs,
                error=run.error,
                start_time=run.recorded_at,
                end_time=run.recorded_at,
                project_name=self.project_name,
            )
        except Exception as e:
            logger.error(f"LangSmith tracing error for run '{run.name}': {e}")
