import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional

import structlog

from dyor_research.collection.sources import to_finding
from dyor_research.config.settings import Settings
from dyor_research.intent.classifier import QueryClassifier
from dyor_research.llm.client import build_completion_client
from dyor_research.models import Finding, ProjectKind, ProjectType
from dyor_research.net.resilience import ResilienceContext
from dyor_research.quality.gates import QualityGatePipeline
from dyor_research.scoring import ScoringEngine


def _init_logging():
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, stream=sys.stderr)
    structlog.configure(
        processors=[structlog.processors.add_log_level, structlog.processors.TimeStamper(fmt="iso"), structlog.processors.JSONRenderer()],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def load_findings(path: Path) -> Dict[str, Finding]:
    """Read a findings file: source id -> finding object, or a raw collector payload."""
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a JSON object keyed by source id")
    findings = {}
    for source, value in raw.items():
        if isinstance(value, dict) and "found" in value:
            findings[source] = Finding.model_validate(value)
        else:
            findings[source] = to_finding(value)
    return findings


async def _classify(args, settings: Settings) -> int:
    resilience = ResilienceContext.from_settings(settings)
    classifier = QueryClassifier(build_completion_client(settings, resilience))
    result = await classifier.classify(args.name, args.symbol, args.address)
    print(result.model_dump_json(indent=2))
    return 0


def _score(args, settings: Settings) -> int:
    findings = load_findings(Path(args.findings))
    scoring = ScoringEngine(settings.thresholds)
    gates = QualityGatePipeline(scoring, settings.thresholds)
    hint = ProjectType(type=ProjectKind(args.project_type), established=args.established)
    result = gates.check(findings, hint, entity=args.entity)
    print(json.dumps(result.model_dump(mode="json"), indent=2))
    return 0 if result.passed else 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dyor-research", description="Research orchestration for games, tokens and projects")
    sub = p.add_subparsers(dest="command", required=True)

    c = sub.add_parser("classify", help="Show the routing decision for an entity")
    c.add_argument("name", help="Entity name")
    c.add_argument("--symbol", default=None, help="Token symbol")
    c.add_argument("--address", default=None, help="Contract address")

    s = sub.add_parser("score", help="Score a findings file and run the quality gates")
    s.add_argument("findings", help="JSON file: source id -> finding")
    s.add_argument("--entity", default=None, help="Entity name (enables allow-list leniency)")
    s.add_argument("--project-type", choices=[k.value for k in ProjectKind], default=ProjectKind.UNKNOWN.value)
    s.add_argument("--established", action="store_true", help="Treat the project as established")
    return p


def main(argv: Optional[list] = None) -> int:
    _init_logging()
    args = build_parser().parse_args(argv)
    settings = Settings()

    if args.command == "classify":
        return asyncio.run(asyncio.wait_for(_classify(args, settings), timeout=settings.LLM_TIMEOUT_SEC * 2))
    if args.command == "score":
        return _score(args, settings)
    return 1


if __name__ == "__main__":
    sys.exit(main())
