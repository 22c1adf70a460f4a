"""XrefTask and XrefService: transformers, diagnostics, view lifecycle, tracing."""

import json
import threading

import pytest

from decomp_xref.config import XrefConfig
from decomp_xref.document import DIAGNOSTIC_HEADER
from decomp_xref.task import Transformer, TransformerKind, XrefRequest, XrefService, XrefTask
from decomp_xref.trace.trace_utils import TraceLogger, using_tracer

OBJECT = "java/lang/Object"

GOOD_SOURCE = (
    "package com.example;\n"
    "class Main {\n"
    "    Foo foo;\n"
    "    void run() { foo.go(); }\n"
    "}\n"
)


@pytest.fixture
def corpus(make_corpus):
    return make_corpus(
        {
            "app.jar": {
                "com/example/Main": (OBJECT, [("run", "()V")]),
                "com/example/Foo": (OBJECT, [("go", "()V")]),
            }
        }
    )


def _decompiler(text, name="fake-decompiler"):
    return Transformer(name=name, kind=TransformerKind.DECOMPILER, fn=lambda _n, _b: text)


def _request(transformer, jump_to=None):
    return XrefRequest("app.jar", "com/example/Main", transformer, jump_to=jump_to)


def test_decompiled_output_is_resolved(corpus):
    result = XrefTask(corpus, _request(_decompiler(GOOD_SOURCE), jump_to="run")).run()

    assert result.text == GOOD_SOURCE
    assert result.parse_error is None
    assert not result.cancelled
    assert result.jump_to == "run"
    assert result.transformer.name == "fake-decompiler"
    assert [(ln.kind, ln.target_internal_class_name) for ln in result.links] == [
        ("type", "com/example/Foo"),
        ("method", "com/example/Foo"),
    ]


def test_malformed_source_gets_diagnostic_and_no_links(corpus):
    broken = "package com.example;\nclass Main {\n    void run( {\n"
    result = XrefTask(corpus, _request(_decompiler(broken))).run()

    assert len(result.links) == 0
    assert result.parse_error
    assert result.text.startswith(broken)
    tail = result.text[len(broken):]
    assert DIAGNOSTIC_HEADER in tail
    assert tail.rstrip().endswith("*/")


def test_diagnostic_block_cannot_be_closed_early(corpus):
    broken = "class Main { /* */ */ void x( }\n"
    result = XrefTask(corpus, _request(_decompiler(broken))).run()

    tail = result.text[len(broken):]
    assert tail.count("*/") == 1


def test_disassembler_output_is_not_parsed(corpus):
    listing = "// class version 52.0\npublic class com/example/Main {\n"
    transformer = Transformer(name="asm", kind=TransformerKind.DISASSEMBLER, fn=lambda _n, _b: listing)

    result = XrefTask(corpus, _request(transformer)).run()

    assert result.text == listing
    assert len(result.links) == 0
    assert result.parse_error is None


def test_transformer_without_output(corpus):
    result = XrefTask(corpus, _request(_decompiler(None))).run()
    assert result.text == ""
    assert len(result.links) == 0


def test_transformer_receives_class_bytes(corpus):
    seen = []

    def fn(name, data):
        seen.append((name, data[:4]))
        return GOOD_SOURCE

    XrefTask(corpus, _request(Transformer("probe", TransformerKind.DECOMPILER, fn))).run()

    assert seen == [("com/example/Main", b"\xca\xfe\xba\xbe")]


def test_missing_class_raises(corpus):
    request = XrefRequest("app.jar", "com/example/Nope", _decompiler(GOOD_SOURCE))
    with pytest.raises(KeyError):
        XrefTask(corpus, request).run()


def test_cancelled_task_reports_cancellation(corpus):
    cancel = threading.Event()
    cancel.set()

    result = XrefTask(corpus, _request(_decompiler(GOOD_SOURCE)), cancel_event=cancel).run()

    assert result.cancelled
    assert len(result.links) == 0


def test_service_delivers_and_deduplicates_views(corpus):
    gate = threading.Event()

    def slow(_name, _data):
        gate.wait(5)
        return GOOD_SOURCE

    delivered = []
    request = _request(Transformer("slow", TransformerKind.DECOMPILER, slow))
    with XrefService(corpus, XrefConfig(workers=2)) as service:
        first = service.open(request, on_done=delivered.append)
        second = service.open(request, on_done=delivered.append)
        assert first is second
        assert service.is_open(request)
        gate.set()
        result = first.result(timeout=5)

    assert result is not None
    assert delivered == [result]
    assert len(result.links) == 2


def test_closed_view_drops_result(corpus):
    gate = threading.Event()

    def slow(_name, _data):
        gate.wait(5)
        return GOOD_SOURCE

    delivered = []
    request = _request(Transformer("slow", TransformerKind.DECOMPILER, slow))
    with XrefService(corpus) as service:
        handle = service.open(request, on_done=delivered.append)
        handle.close()
        assert handle.closed
        assert not service.is_open(request)
        gate.set()
        assert handle.result(timeout=5) is None

        reopened = service.open(request, on_done=delivered.append)
        assert reopened is not handle
        assert reopened.result(timeout=5) is not None

    assert len(delivered) == 1


def test_trace_spans_follow_into_worker_threads(corpus, tmp_path):
    trace_path = tmp_path / "trace.jsonl"
    tracer = TraceLogger(run_id="t1", trace_path=trace_path, base_extra={"case": "service"})

    with using_tracer(tracer), XrefService(corpus) as service:
        service.open(_request(_decompiler(GOOD_SOURCE))).result(timeout=5)

    rows = [json.loads(line) for line in trace_path.read_text(encoding="utf-8").splitlines()]
    assert [r["stage"] for r in rows] == ["parse", "resolve"]
    assert all(r["ok"] and r["run_id"] == "t1" for r in rows)
    assert rows[0]["extra"] == {"case": "service"}
    assert rows[0]["output"]["ok"] is True
    assert rows[1]["output"]["links"] == 2


def test_unpaired_surrogate_in_output_is_replaced(corpus):
    text = 'package com.example;\nclass Main { String s = "\ud800"; Foo foo; }\n'

    result = XrefTask(corpus, _request(_decompiler(text))).run()

    assert result.parse_error is None
    assert "\ud800" not in result.text
    assert len(result.text) == len(text)
    assert result.text[result.text.index('"') + 1] == "\ufffd"
    (link,) = list(result.links)
    assert result.text[link.start_offset:link.end_offset] == "Foo"
    assert link.target_internal_class_name == "com/example/Foo"
