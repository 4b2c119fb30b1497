"""
Command line entry point.

    keyword-search serve [--port 9069 | --socket-addr 0.0.0.0:9069] [--download-url-prefix URL]
    keyword-search inspect index_storage/index-5f0c....json
    keyword-search query index_storage/index-5f0c....json "capital of france" --top-k 3

`inspect` and `query` work on a downloaded artifact file, without a server.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn

from . import __version__
from .artifact import deserialize_index, read_header
from .bm25.index_builder import Index
from .bm25.scorer import BM25Scorer
from .config import Settings, load_environment
from .errors import KeywordSearchError
from .logging_config import setup_logging
from .search import rank

logger = logging.getLogger(__name__)


def _load_artifact(path: str) -> Index:
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise KeywordSearchError(f"Cannot read artifact {path}: {e}")
    return deserialize_index(data)


def cmd_serve(args) -> int:
    load_environment()
    settings = Settings.from_env()

    if args.socket_addr:
        settings.socket_addr = args.socket_addr
    if args.host:
        settings.host = args.host
    if args.port is not None:
        settings.port = args.port
        settings.socket_addr = None
    if args.download_url_prefix:
        settings.download_url_prefix = args.download_url_prefix
    if args.storage_dir:
        settings.storage_dir = args.storage_dir
    if args.log_level:
        settings.log_level = args.log_level.upper()
    if args.no_log_file:
        settings.log_file = ""

    settings.validate()
    setup_logging(
        log_file=settings.log_file or None,
        console_level=logging.getLevelName(settings.log_level),
    )

    # Imported late so `inspect`/`query` don't pay for FastAPI startup
    from .main import create_app

    host, port = settings.bind_address()
    logger.info(f"Starting keyword search server v{__version__} on {host}:{port}")
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)
    return 0


def cmd_inspect(args) -> int:
    data = Path(args.artifact).read_bytes()
    header = read_header(data)
    index = deserialize_index(data)
    summary = {
        "name": index.name,
        "format": header["format"],
        "version": header["version"],
        "created_at": index.created_at,
        "tokenizer": index.tokenizer.settings(),
        "doc_count": index.doc_count,
        "avg_doc_length": index.inverted.avg_doc_length,
        "vocabulary_size": index.inverted.vocabulary_size,
        "size_bytes": len(data),
    }
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    return 0


def cmd_query(args) -> int:
    index = _load_artifact(args.artifact)
    hits = rank(index, args.query, args.top_k, BM25Scorer(k1=args.k1, b=args.b))

    if args.jsonl:
        for hit in hits:
            print(json.dumps(
                {"title": hit.title, "content": hit.content, "score": hit.score},
                ensure_ascii=False,
            ))
    else:
        if not hits:
            print("No matching documents")
        for i, hit in enumerate(hits, 1):
            print(f"[{i}] {hit.title} score={hit.score:.4f}")
            print(hit.content[:args.max_chars])
            print("-" * 80)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="keyword-search",
        description="BM25 keyword search server and artifact tools",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    ps = sub.add_parser("serve", help="Run the HTTP server")
    bind = ps.add_mutually_exclusive_group()
    bind.add_argument("--socket-addr", help="Listen address as IP:PORT (e.g. 0.0.0.0:9069)")
    bind.add_argument("--port", type=int, help="Listen port (default 9069)")
    ps.add_argument("--host", help="Listen host when --socket-addr is not given (default 0.0.0.0)")
    ps.add_argument(
        "--download-url-prefix",
        help="Public base URL for download links (default: derived from the listen address)",
    )
    ps.add_argument("--storage-dir", help="Directory for index artifacts (local storage)")
    ps.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper)
    ps.add_argument("--no-log-file", action="store_true", help="Log to console only")
    ps.set_defaults(func=cmd_serve)

    pi = sub.add_parser("inspect", help="Print an artifact's header and statistics")
    pi.add_argument("artifact", help="Path to a downloaded index artifact")
    pi.set_defaults(func=cmd_inspect)

    pq = sub.add_parser("query", help="Search a downloaded artifact locally")
    pq.add_argument("artifact", help="Path to a downloaded index artifact")
    pq.add_argument("query", help="Search query")
    pq.add_argument("--top-k", type=int, default=5)
    pq.add_argument("--k1", type=float, default=1.2)
    pq.add_argument("--b", type=float, default=0.75)
    pq.add_argument("--max-chars", type=int, default=2000)
    pq.add_argument("--jsonl", action="store_true")
    pq.set_defaults(func=cmd_query)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except KeywordSearchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
