"""
Decompile-and-resolve units of work.

One XrefTask per opened view: fetch the class bytes, run the transformer,
and for decompiled output parse and resolve references. Tasks share only the
read-only ClassCorpus, so XrefService can run them concurrently without
coordination. Closing a view is advisory: the task stops at its next
cooperative check and the result is dropped instead of delivered.
"""
from __future__ import annotations

import contextvars
import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .config import XrefConfig
from .corpus import ClassCorpus
from .document import SourceDocument
from .java_ast import JavaSourceParser
from .links import LinkTable
from .resolver import ReferenceResolver
from .trace.trace_utils import get_tracer

logger = logging.getLogger(__name__)


class TransformerKind(enum.Enum):
    DECOMPILER = "decompiler"
    DISASSEMBLER = "disassembler"


@dataclass(frozen=True)
class Transformer:
    """A decompiler/disassembler adapter: (internal name, class bytes) -> text or None."""

    name: str
    kind: TransformerKind
    fn: Callable[[str, bytes], Optional[str]] = field(compare=False)


@dataclass(frozen=True)
class XrefRequest:
    archive_id: str
    internal_name: str
    transformer: Transformer
    jump_to: Optional[str] = None

    @property
    def view_key(self) -> Tuple[str, str, str]:
        return self.archive_id, self.internal_name, self.transformer.name


@dataclass
class XrefResult:
    request: XrefRequest
    text: str
    links: LinkTable
    parse_error: Optional[List[str]] = None
    cancelled: bool = False

    @property
    def jump_to(self) -> Optional[str]:
        return self.request.jump_to

    @property
    def transformer(self) -> Transformer:
        return self.request.transformer


class XrefTask:
    def __init__(
        self,
        corpus: ClassCorpus,
        request: XrefRequest,
        *,
        config: Optional[XrefConfig] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.corpus = corpus
        self.request = request
        self.config = config or XrefConfig()
        self.cancel_event = cancel_event or threading.Event()

    def run(self) -> XrefResult:
        req = self.request
        archive = self.corpus.get_archive(req.archive_id)
        class_bytes = archive.class_bytes(req.internal_name) if archive else None
        if class_bytes is None:
            raise KeyError(f"{req.internal_name} not found in {req.archive_id}")

        output = req.transformer.fn(req.internal_name, class_bytes)
        if output is None:
            logger.info("%s produced no output for %s", req.transformer.name, req.internal_name)
            return XrefResult(request=req, text="", links=LinkTable())

        if req.transformer.kind is TransformerKind.DISASSEMBLER:
            return XrefResult(request=req, text=output, links=LinkTable())
        return self.resolve_text(output)

    def resolve_text(self, text: str) -> XrefResult:
        """Parse decompiled *text* and resolve its references."""
        req = self.request
        document = SourceDocument.from_text(text, req.internal_name, req.archive_id)
        tracer = get_tracer()

        parsed = self._traced(
            tracer,
            "parse",
            "JavaSourceParser.parse",
            lambda: JavaSourceParser().parse(document),
            lambda p: {"ok": p.ok, "errors": len(p.errors), "lines": len(document.lines)},
        )
        if not parsed.ok:
            logger.info("could not parse %s: %s", req.internal_name, parsed.errors[0])
            return XrefResult(
                request=req,
                text=document.with_diagnostic(parsed.errors),
                links=LinkTable(),
                parse_error=list(parsed.errors),
            )

        resolver = ReferenceResolver(
            self.corpus,
            parsed,
            config=self.config,
            is_cancelled=self.cancel_event.is_set,
        )
        links = self._traced(
            tracer,
            "resolve",
            "ReferenceResolver.resolve",
            resolver.resolve,
            lambda _: dict(resolver.stats),
        )
        return XrefResult(request=req, text=document.text, links=links, cancelled=resolver.cancelled)

    def _traced(self, tracer, stage: str, tool: str, fn: Callable, summarize: Callable):
        if tracer is None:
            return fn()
        with tracer.span(
            stage=stage,
            tool=tool,
            input_obj={"archive": self.request.archive_id, "class": self.request.internal_name},
        ) as sp:
            out = fn()
            sp.set_output(summarize(out))
            return out


class ViewHandle:
    def __init__(self, service: "XrefService", request: XrefRequest, future: "Future[Optional[XrefResult]]", cancel_event: threading.Event) -> None:
        self._service = service
        self.request = request
        self.future = future
        self._cancel_event = cancel_event

    @property
    def closed(self) -> bool:
        return self._cancel_event.is_set()

    def close(self) -> None:
        self._cancel_event.set()
        self._service._forget(self.request.view_key, self)

    def result(self, timeout: Optional[float] = None) -> Optional[XrefResult]:
        """The delivered result, or None if the view was closed first."""
        return self.future.result(timeout=timeout)


class XrefService:
    """Runs one XrefTask per opened view on a thread pool."""

    def __init__(self, corpus: ClassCorpus, config: Optional[XrefConfig] = None) -> None:
        self.corpus = corpus
        self.config = config or XrefConfig()
        self._pool = ThreadPoolExecutor(max_workers=self.config.workers, thread_name_prefix="xref")
        self._open: Dict[Tuple[str, str, str], ViewHandle] = {}
        self._lock = threading.Lock()

    def __enter__(self) -> "XrefService":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.shutdown()
        return False

    def open(
        self,
        request: XrefRequest,
        on_done: Optional[Callable[[XrefResult], None]] = None,
    ) -> ViewHandle:
        """Start resolving a view; an already open view is returned as is."""
        with self._lock:
            existing = self._open.get(request.view_key)
            if existing is not None:
                return existing
            cancel_event = threading.Event()
            task = XrefTask(self.corpus, request, config=self.config, cancel_event=cancel_event)
            # carry the caller's tracer into the worker thread
            ctx = contextvars.copy_context()
            future = self._pool.submit(ctx.run, self._run, task, on_done)
            handle = ViewHandle(self, request, future, cancel_event)
            self._open[request.view_key] = handle
            return handle

    def _run(self, task: XrefTask, on_done: Optional[Callable[[XrefResult], None]]) -> Optional[XrefResult]:
        result = task.run()
        if task.cancel_event.is_set():
            logger.debug("view closed, dropping result for %s", task.request.internal_name)
            return None
        if on_done is not None:
            on_done(result)
        return result

    def _forget(self, key: Tuple[str, str, str], handle: ViewHandle) -> None:
        with self._lock:
            if self._open.get(key) is handle:
                del self._open[key]

    def is_open(self, request: XrefRequest) -> bool:
        with self._lock:
            return request.view_key in self._open

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
