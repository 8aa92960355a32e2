"""
Pipeline - Run Pipeline

CLI entry point: seed sources, inspect the store, ask questions, and
drive human review from the command line.
"""

import asyncio
import argparse
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
import logging

from pydantic import ValidationError

from veritas_server.config import get_settings
from veritas_server.pipeline.embedder import Embedder
from veritas_server.pipeline.indexer import PassageStore
from veritas_server.schemas.answer import Answer, Chunk, Done, Error, QueryOptions
from veritas_server.schemas.review import ReviewDecision
from veritas_server.schemas.source import Source
from veritas_server.services.validation_pipeline import build_pipeline


logger = logging.getLogger(__name__)


class PipelineRunner:
    """Ingests legal sources and runs queries against them."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()
        self.embedder = Embedder(self.settings)
        self.store = PassageStore(self.settings)
        self._pipeline = None

    @property
    def pipeline(self):
        """Lazy build the answer pipeline."""
        if self._pipeline is None:
            self._pipeline = build_pipeline(self.settings)
        return self._pipeline

    def load_sources(self, path: Path) -> List[Source]:
        """Load sources from a JSON array (or {"sources": [...]}) file."""
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("sources", [])

        sources = []
        for n, item in enumerate(data):
            try:
                sources.append(Source.model_validate(item))
            except ValidationError as e:
                logger.error(f"Skipping source #{n} in {path}: {e.errors()[0]['msg']}")
        return sources

    def seed(self, path: Path, batch_size: int = 32) -> dict:
        """
        Embed and index sources from a JSON file.

        Args:
            path: JSON file of source records
            batch_size: Sources upserted per Qdrant call

        Returns:
            Statistics dict
        """
        logger.info(f"Seeding sources from {path}...")
        self.store.ensure_collection()

        stats = {
            "loaded": 0,
            "indexed": 0,
            "errors": 0,
            "start_time": datetime.now(timezone.utc).isoformat(),
        }

        sources = self.load_sources(path)
        stats["loaded"] = len(sources)

        for start in range(0, len(sources), batch_size):
            batch = sources[start:start + batch_size]
            try:
                vectors = self.embedder.embed([f"{s.title}\n\n{s.content}" for s in batch])
                self.store.upsert_batch([
                    (s.id, vector, self.store.build_payload(s))
                    for s, vector in zip(batch, vectors)
                ])
                stats["indexed"] += len(batch)
                logger.info(f"Indexed {stats['indexed']} sources...")
            except Exception as e:
                logger.error(f"Error indexing batch starting at {start}: {e}")
                stats["errors"] += len(batch)

        stats["end_time"] = datetime.now(timezone.utc).isoformat()
        logger.info(f"Seed complete: {stats}")
        return stats

    def status(self) -> dict:
        """Passage store and review queue status."""
        return {
            "collection": self.store.collection_name,
            "passages": self.store.get_collection_info(),
            "review": self.pipeline.review.metrics().model_dump(),
        }

    async def ask(
        self,
        question: str,
        options: Optional[QueryOptions] = None,
        stream: bool = False,
    ) -> Answer:
        """Answer a question, optionally printing chunks as they arrive."""
        if not stream:
            return await self.pipeline.process_query(question, options)

        answer = None
        async for event in self.pipeline.stream_query(question, options):
            if isinstance(event, Chunk):
                print(event.text, end="", flush=True)
            elif isinstance(event, Error):
                print()
                raise RuntimeError(event.failure.message)
            elif isinstance(event, Done):
                print()
                answer = event.answer
        return answer

    async def review(self, task_id: str, decision: ReviewDecision) -> dict:
        task = await self.pipeline.submit_review(task_id, decision)
        return {"task_id": task.id, "status": task.status}

    async def escalate(self) -> dict:
        escalated = await self.pipeline.review.escalate_overdue()
        return {"escalated": [t.id for t in escalated]}


def _print_answer(answer: Answer) -> None:
    print(json.dumps({
        "answer": answer.answer,
        "confidence": answer.confidence.overall,
        "review_state": answer.review_state,
        "review_task_id": answer.review_task_id,
        "flags": [
            {"type": f.flag_type, "severity": f.severity, "description": f.description}
            for f in answer.flagged_content
        ],
        "citations": [
            {"text": v.original_text, "status": v.status, "link": v.hyperlink}
            for v in answer.citation_validations
        ],
        "failure": answer.failure.model_dump() if answer.failure else None,
    }, indent=2))


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Veritas grounded-answer pipeline")
    sub = parser.add_subparsers(dest="command")

    seed = sub.add_parser("seed", help="Embed and index sources from a JSON file")
    seed.add_argument("path", type=Path, help="JSON file of sources")

    sub.add_parser("status", help="Show passage store and review queue status")

    ask = sub.add_parser("ask", help="Ask a question")
    ask.add_argument("question", type=str)
    ask.add_argument("--top-k", type=int, default=None, help="Passages to retrieve")
    ask.add_argument("--strict", action="store_true", help="Strict publication gate")
    ask.add_argument("--no-review", action="store_true", help="Skip human review")
    ask.add_argument("--stream", action="store_true", help="Stream the answer")

    review = sub.add_parser("review", help="Submit a review decision")
    review.add_argument("task_id", type=str)
    review.add_argument("decision", choices=["approve", "reject", "modify", "escalate"])
    review.add_argument("--reviewer", type=str, required=True)
    review.add_argument("--reasoning", type=str, default="")
    review.add_argument("--modifications", type=str, default=None)

    sub.add_parser("escalate", help="Escalate review tasks past their deadline")

    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log.level))

    runner = PipelineRunner(settings)

    if args.command == "seed":
        print(runner.seed(args.path))
    elif args.command == "status":
        print(json.dumps(runner.status(), indent=2, default=str))
    elif args.command == "ask":
        options = QueryOptions(
            top_k=args.top_k,
            strict_mode=True if args.strict else None,
            enable_review=False if args.no_review else None,
        )
        answer = asyncio.run(runner.ask(args.question, options, stream=args.stream))
        _print_answer(answer)
    elif args.command == "review":
        decision = ReviewDecision(
            decision=args.decision,
            reviewer_id=args.reviewer,
            reasoning=args.reasoning,
            modifications=args.modifications,
        )
        print(asyncio.run(runner.review(args.task_id, decision)))
    elif args.command == "escalate":
        print(asyncio.run(runner.escalate()))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
