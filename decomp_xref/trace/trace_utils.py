# decomp_xref/trace/trace_utils.py
"""
Pass-level tracing for decompile-and-resolve runs.

A TraceLogger appends one JSON object per finished stage to a .jsonl file.
The current tracer lives in a ContextVar, so XrefService copies it into its
worker threads and library code never has to pass it around.
"""
from __future__ import annotations

import contextlib
import contextvars
import hashlib
import json
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional


_CURRENT_TRACER: contextvars.ContextVar[Optional["TraceLogger"]] = contextvars.ContextVar(
    "CURRENT_XREF_TRACER", default=None
)


def get_tracer() -> Optional["TraceLogger"]:
    return _CURRENT_TRACER.get()


@contextlib.contextmanager
def using_tracer(tracer: "TraceLogger") -> Iterator["TraceLogger"]:
    token = _CURRENT_TRACER.set(tracer)
    try:
        yield tracer
    finally:
        _CURRENT_TRACER.reset(token)


def digest_obj(obj: Any, *, limit: int = 20000) -> str:
    """sha1 of the object's sorted JSON form; empty for None."""
    if obj is None:
        return ""
    try:
        s = json.dumps(obj, ensure_ascii=False, sort_keys=True, default=str)
    except (TypeError, ValueError):
        s = repr(obj)
    if len(s) > limit:
        s = s[:limit]
    return hashlib.sha1(s.encode("utf-8", errors="ignore")).hexdigest()


@dataclass
class TraceSpan:
    """One timed stage. Records the outcome on exit and re-raises any error."""

    tracer: "TraceLogger"
    stage: str
    tool: str
    input_obj: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _started: float = 0.0
    _output: Any = None

    def set_output(self, output_obj: Any) -> None:
        self._output = output_obj

    def add_extra(self, **kwargs: Any) -> None:
        self.extra.update(kwargs)

    def __enter__(self) -> "TraceSpan":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.tracer.log(
            stage=self.stage,
            tool=self.tool,
            input_obj=self.input_obj,
            output_obj=self._output,
            latency_ms=int((time.perf_counter() - self._started) * 1000),
            error_type=exc_type.__name__ if exc_type is not None else None,
            extra=self.extra,
        )
        return False


class TraceLogger:
    """
    Row fields:
      run_id, stage, tool, input_digest, output_digest, output, latency_ms, ok, error_type, extra

    `output` keeps small summaries (counts, flags) verbatim next to their digest.
    """

    SUMMARY_LIMIT = 2000

    def __init__(self, *, run_id: str, trace_path: Path, base_extra: Optional[Dict[str, Any]] = None) -> None:
        self.run_id = run_id
        self.trace_path = Path(trace_path)
        self.trace_path.parent.mkdir(parents=True, exist_ok=True)
        self.base_extra = dict(base_extra or {})
        self._lock = threading.Lock()

    def span(
        self,
        *,
        stage: str,
        tool: str,
        input_obj: Any = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> TraceSpan:
        return TraceSpan(tracer=self, stage=stage, tool=tool, input_obj=input_obj, extra=dict(extra or {}))

    def log(
        self,
        *,
        stage: str,
        tool: str,
        input_obj: Any = None,
        output_obj: Any = None,
        latency_ms: Optional[int] = None,
        error_type: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        summary = output_obj if isinstance(output_obj, dict) else None
        if summary is not None and len(json.dumps(summary, default=str)) > self.SUMMARY_LIMIT:
            summary = None
        row = {
            "run_id": self.run_id,
            "stage": stage,
            "tool": tool,
            "input_digest": digest_obj(input_obj),
            "output_digest": digest_obj(output_obj),
            "output": summary,
            "latency_ms": latency_ms,
            "ok": error_type is None,
            "error_type": error_type or "",
            "extra": {**self.base_extra, **(extra or {})},
        }
        line = json.dumps(row, ensure_ascii=False, default=str)
        with self._lock, self.trace_path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
