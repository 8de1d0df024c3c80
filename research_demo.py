"""
Example: drive the research console against a live workflow service.

Usage:
    python3 research_demo.py research --capability "Market Analysis" --framework "SWOT" --context "EV charging"
    python3 research_demo.py chat --document-id doc-123 --question "What is the conclusion?"
    python3 research_demo.py history
"""

import argparse
import asyncio
import logging
from pathlib import Path

from deep_research.chat import ChatSessionManager, ChatState
from deep_research.client import ClientConfig, HttpWorkflowClient
from deep_research.jobs import (
    AsyncioScheduler,
    JobOrchestrator,
    JobSnapshotStore,
    LoggingStatusView,
    OrchestratorConfig,
    ResearchHistory,
    ResearchModifiers,
    ResearchParameters,
    SqlAlchemyKeyValueStore,
    StatusProjector,
)


def setup_logging(log_file: Path, verbose: bool) -> None:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler(log_file)],
    )


async def run_research(args, store: SqlAlchemyKeyValueStore) -> None:
    client = HttpWorkflowClient(ClientConfig.from_env())
    scheduler = AsyncioScheduler()
    orchestrator = JobOrchestrator(
        client=client,
        snapshots=JobSnapshotStore(store),
        projector=StatusProjector(LoggingStatusView(), scheduler),
        scheduler=scheduler,
        config=OrchestratorConfig.from_env(),
        history=ResearchHistory(store),
    )
    try:
        await orchestrator.restore_on_load()
        parameters = ResearchParameters(
            capability=args.capability,
            framework=args.framework,
            context=args.context,
            modifiers=ResearchModifiers(
                scope=args.scope,
                overview_details=args.overview_details,
                analytical_rigor=args.analytical_rigor,
                perspective=args.perspective,
            ),
        )
        if await orchestrator.submit(parameters) is None:
            return
        print(f"Tracking {orchestrator.active_count} research job(s); waiting for new documents")
        while orchestrator.active_count:
            await asyncio.sleep(1)
        print("All research jobs finished")
    finally:
        await orchestrator.aclose()
        await client.aclose()


async def run_chat(args) -> None:
    client = HttpWorkflowClient(ClientConfig.from_env())
    chat = ChatSessionManager(client)
    try:
        chat.switch_document(args.document_id, title=args.title or args.document_id)
        if not await chat.ask(args.question):
            print("Question was not accepted")
            return
        while chat.state != ChatState.IDLE:
            await asyncio.sleep(0.2)
        print(chat.transcript())
    finally:
        chat.close()
        await client.aclose()


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", default=Path("./data/deep_research.db"), type=Path, help="SQLite DB path")
    parser.add_argument("--log-file", default=Path("./data/research_demo.log"), type=Path, help="Log file path")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    research = sub.add_parser("research", help="Start a research job and wait for its document")
    research.add_argument("--capability", required=True, help="Analysis type")
    research.add_argument("--framework", required=True, help="Analytical framework")
    research.add_argument("--context", default="", help="Free-form research context")
    research.add_argument("--scope", default="", help="Scope modifier")
    research.add_argument("--overview-details", default="", help="Overview detail modifier")
    research.add_argument("--analytical-rigor", default="", help="Analytical rigor modifier")
    research.add_argument("--perspective", default="", help="Perspective modifier")

    chat = sub.add_parser("chat", help="Ask one question about a document")
    chat.add_argument("--document-id", required=True, help="Document to chat about")
    chat.add_argument("--title", default=None, help="Document title")
    chat.add_argument("--question", required=True, help="Question text")

    sub.add_parser("history", help="Print the research history as JSON")
    args = parser.parse_args()

    setup_logging(args.log_file, args.verbose)
    args.db.parent.mkdir(parents=True, exist_ok=True)
    store = SqlAlchemyKeyValueStore(f"sqlite+pysqlite:///{args.db}")

    if args.command == "research":
        asyncio.run(run_research(args, store))
    elif args.command == "chat":
        asyncio.run(run_chat(args))
    else:
        print(ResearchHistory(store).export_json())


if __name__ == "__main__":
    main()
