"""
Command-line entry point for Profit Scout.

    profit-scout chat [--session ID] [--company NAME] [--user ID]
    profit-scout serve [--host HOST] [--port PORT] [--reload]
    profit-scout ingest DIR [--ticker TICKER]

``chat`` runs an interactive loop against the local conversation store,
``serve`` starts the FastAPI app with uvicorn and ``ingest`` loads text
documents into the Pinecone document store.
"""

import argparse
import logging
import sys
from typing import List, Optional

from profit_scout.core.errors import InvalidInput
from profit_scout.utils.logging import get_logger, set_log_level

logger = get_logger("profit_scout")

_EXIT_WORDS = {"exit", "quit", ":q"}


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # profit_scout loggers don't propagate to the root logger
    set_log_level(level)


def run_chat(session_id: Optional[str], company: Optional[str], user_id: str) -> int:
    """Interactive chat loop; returns the process exit code."""
    from profit_scout.workflow.orchestrator import get_orchestrator, shutdown_orchestrator

    orchestrator = get_orchestrator()
    print("=" * 60)
    print("Profit Scout — type a question, or 'exit' to quit")
    print("=" * 60)

    try:
        while True:
            try:
                question = input("\nYou: ").strip()
            except EOFError:
                break
            if not question:
                continue
            if question.lower() in _EXIT_WORDS:
                break

            try:
                result = orchestrator.submit_turn(
                    question,
                    session_id=session_id,
                    company_context=company,
                    user_id=user_id,
                )
            except InvalidInput as exc:
                print(f"  ! {exc.message}")
                continue

            session_id = result.session_id
            # an explicit --company only applies until the question names another one
            company = None
            print(f"\nAI: {result.answer}")
    except KeyboardInterrupt:
        print()
    finally:
        shutdown_orchestrator(wait=True)

    if session_id:
        print(f"\nSession: {session_id}")
    return 0


def run_serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("profit_scout.web_app.server:app", host=host, port=port, reload=reload)
    return 0


def run_ingest(directory: str, ticker: Optional[str]) -> int:
    from profit_scout.rag import load_text_documents, upsert_documents

    documents = load_text_documents(directory, ticker=ticker)
    if not documents:
        print(f"No .txt or .md documents found under {directory}")
        return 1
    count = upsert_documents(documents)
    print(f"Upserted {count}/{len(documents)} chunks from {directory}")
    return 0 if count else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="profit-scout",
        description="Conversational financial analyst with rolling conversation memory.",
    )
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="interactive chat in the terminal")
    chat.add_argument("--session", dest="session_id", help="continue an existing session")
    chat.add_argument("--company", help="company name or ticker to start with")
    chat.add_argument("--user", dest="user_id", default="anonymous", help="user id to record")

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")

    ingest = sub.add_parser("ingest", help="load .txt/.md documents into the document store")
    ingest.add_argument("directory")
    ingest.add_argument("--ticker", help="tag every chunk with this ticker")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)

    if args.command == "chat":
        return run_chat(args.session_id, args.company, args.user_id)
    if args.command == "serve":
        return run_serve(args.host, args.port, args.reload)
    return run_ingest(args.directory, args.ticker)


if __name__ == "__main__":
    sys.exit(main())
