#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import shlex
import subprocess
import tempfile
import uuid
from pathlib import Path
from typing import List, Optional

from decomp_xref.config import XrefConfig
from decomp_xref.corpus import Archive, ClassCorpus
from decomp_xref.graph_builder import XrefGraphBuilder
from decomp_xref.task import Transformer, TransformerKind, XrefRequest, XrefResult, XrefService
from decomp_xref.trace.trace_utils import TraceLogger, using_tracer


def _load_corpus(paths: List[str]) -> ClassCorpus:
    corpus = ClassCorpus()
    for p in paths:
        path = Path(p)
        archive = Archive.from_directory(path) if path.is_dir() else Archive.from_jar(path)
        corpus.add_archive(archive)
    return corpus


def _source_transformer(source: Path) -> Transformer:
    text = source.read_text(encoding="utf-8", errors="replace")
    return Transformer(name=f"file:{source.name}", kind=TransformerKind.DECOMPILER, fn=lambda _n, _b: text)


def _command_transformer(template: str) -> Transformer:
    """Runs an external decompiler; `{class_file}` in the template is replaced by a temp .class path."""

    def run(internal_name: str, data: bytes) -> Optional[str]:
        with tempfile.TemporaryDirectory() as tmp:
            class_file = Path(tmp) / (internal_name.rsplit("/", 1)[-1] + ".class")
            class_file.write_bytes(data)
            argv = [a.replace("{class_file}", str(class_file)) for a in shlex.split(template)]
            proc = subprocess.run(argv, capture_output=True, text=True)
            if proc.returncode != 0:
                print(f"⚠️ decompiler exited with {proc.returncode}: {proc.stderr.strip()[:200]}")
                return None
            return proc.stdout

    return Transformer(name="command", kind=TransformerKind.DECOMPILER, fn=run)


def main() -> None:
    ap = argparse.ArgumentParser(description="Resolve cross-reference links in decompiled Java source")
    ap.add_argument("--dotenv", default=".env", help="Optional .env path (default: .env)")
    ap.add_argument("--archive", action="append", required=True, help="Jar or class directory; repeat in load order")
    ap.add_argument("--class", dest="class_name", required=True, help="Internal class name, e.g. com/example/Foo")
    ap.add_argument("--owner", default=None, help="Archive id owning the class (default: first archive that has it)")
    src = ap.add_mutually_exclusive_group(required=True)
    src.add_argument("--source", help="Already decompiled .java text for the class")
    src.add_argument("--decompiler-cmd", help="Decompiler command line; {class_file} is replaced by the class path")
    ap.add_argument("--out", default=None, help="Write links JSON here (default: stdout)")
    ap.add_argument("--graphml", default=None, help="Also export the cross-reference graph as GraphML")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    config = XrefConfig.from_env(dotenv=args.dotenv)

    corpus = _load_corpus(args.archive)
    owner = args.owner or corpus.lookup_archive(args.class_name)
    if owner is None:
        ap.error(f"{args.class_name} is not in any archive")

    transformer = _source_transformer(Path(args.source)) if args.source else _command_transformer(args.decompiler_cmd)
    request = XrefRequest(archive_id=owner, internal_name=args.class_name, transformer=transformer)

    run_id = uuid.uuid4().hex[:12]
    trace_path = Path(config.trace_path) if config.trace_path else Path("runs") / run_id / "trace.jsonl"
    tracer = TraceLogger(run_id=run_id, trace_path=trace_path, base_extra={"class": args.class_name})

    with using_tracer(tracer), XrefService(corpus, config) as service:
        result: Optional[XrefResult] = service.open(request).result()

    if result is None:
        print("⚠️ view closed before the result was delivered")
        return

    payload = {
        "class": args.class_name,
        "archive": owner,
        "parse_error": result.parse_error,
        "links": result.links.to_list(),
    }
    text = json.dumps(payload, ensure_ascii=False, indent=2)
    if args.out:
        Path(args.out).write_text(text, encoding="utf-8")
        print(f"✅ links: {Path(args.out).resolve()}")
    else:
        print(text)

    if args.graphml:
        builder = XrefGraphBuilder()
        builder.add_result(result)
        builder.export_graphml(args.graphml)
        print(f"✅ graph: {Path(args.graphml).resolve()} {builder.summary()}")
    print(f"✅ trace: {trace_path.resolve()}")


if __name__ == "__main__":
    main()
