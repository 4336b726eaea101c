"""Command-line entry point for ingestion and search.

Examples
--------
    formbridge-rag ingest-all
    formbridge-rag ingest government/ontario-works --force
    formbridge-rag search "income exemption" --category government
    formbridge-rag serve --port 8080
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from collections.abc import Sequence

from formbridge_rag.config import configure_logging, settings
from formbridge_rag.serving.services import Services, build_services


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _ingest_all(services: Services, args: argparse.Namespace) -> int:
    cancel = threading.Event()
    # Ctrl-C stops the batch between documents instead of mid-write.
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        result = services.orchestrator.ingest_all_pending(cancel_event=cancel)
    finally:
        signal.signal(signal.SIGINT, previous)
    _print(result.model_dump())
    return 1 if result.failed else 0


def _ingest(services: Services, args: argparse.Namespace) -> int:
    result = services.orchestrator.ingest(args.source_id, force=args.force)
    _print(result.model_dump())
    return 1 if result.status == "failed" else 0


def _status(services: Services, args: argparse.Namespace) -> int:
    _print(services.orchestrator.status(args.source_id).model_dump())
    return 0


def _delete(services: Services, args: argparse.Namespace) -> int:
    _print({"source_id": args.source_id, "deleted_count": services.knowledge_store.delete_by_source_id(args.source_id)})
    return 0


def _migrate(services: Services, args: argparse.Namespace) -> int:
    result = services.knowledge_store.migrate_missing_embeddings()
    _print(result.model_dump())
    return 1 if result.failed else 0


def _search(services: Services, args: argparse.Namespace) -> int:
    if args.context:
        print(services.retriever.context(args.query, category=args.category, source_id=args.source_id))
        return 0
    hits = services.retriever.search(args.query, category=args.category, source_id=args.source_id, limit=args.limit)
    _print(
        [
            {"id": h.chunk.id, "title": h.chunk.title, "score": round(h.score, 4), "method": h.method}
            for h in hits
        ]
    )
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    # The app builds and closes its own services in its lifespan.
    uvicorn.run("formbridge_rag.serving.app:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="formbridge-rag", description="Knowledge ingestion and retrieval")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("ingest-all", help="Ingest every pending source document").set_defaults(handler=_ingest_all)

    p = sub.add_parser("ingest", help="Ingest one source document")
    p.add_argument("source_id")
    p.add_argument("--force", action="store_true", help="Replace existing chunks")
    p.set_defaults(handler=_ingest)

    p = sub.add_parser("status", help="Show ingestion status")
    p.add_argument("source_id")
    p.set_defaults(handler=_status)

    p = sub.add_parser("delete", help="Delete all chunks of a source document")
    p.add_argument("source_id")
    p.set_defaults(handler=_delete)

    sub.add_parser("migrate", help="Backfill missing embeddings").set_defaults(handler=_migrate)

    p = sub.add_parser("search", help="Search the knowledge base")
    p.add_argument("query")
    p.add_argument("--category")
    p.add_argument("--source-id")
    p.add_argument("--limit", type=int)
    p.add_argument("--context", action="store_true", help="Print the prompt context instead")
    p.set_defaults(handler=_search)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8080)
    p.set_defaults(handler=None)
    return parser


def main(argv: Sequence[str] | None = None, services: Services | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    if args.command == "serve":
        return _serve(args)
    owned = services is None
    if services is None:
        if settings.store_backend == "memory":
            # Each CLI run would start from, and discard, an empty store.
            print(
                f"formbridge-rag {args.command}: STORE_BACKEND=memory does not persist between runs; "
                "use STORE_BACKEND=chroma or the HTTP API (formbridge-rag serve).",
                file=sys.stderr,
            )
            return 2
        services = build_services()
    try:
        return args.handler(services, args)
    finally:
        if owned:
            services.close()


if __name__ == "__main__":
    raise SystemExit(main())
