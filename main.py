"""CLI entrypoint for the researcher/job matching pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from config import Settings
from errors import NotFound, ParseError, PipelineError, UpstreamUnavailable, ValidationError
from models import CandidateProfile
from perplexity_client import (
    DEFAULT_CONFERENCE,
    DEFAULT_RECOMMENDATIONS,
    DEFAULT_SEARCH_LIMIT,
    PerplexityGateway,
)
from pipeline import DEFAULT_PAPER_LIMIT, ResearchMatchPipeline
from profile_store import ProfileStore


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Rank researchers against a job description")
    parser.add_argument(
        "--store",
        default=os.getenv("PROFILE_STORE_PATH", "profiles.json"),
        help="JSON snapshot file holding researcher profiles between runs",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    enrich = sub.add_parser("enrich", help="Fetch, verify and store a researcher profile")
    enrich.add_argument("name")
    enrich.add_argument("affiliation")
    enrich.add_argument("--limit", type=int, default=DEFAULT_PAPER_LIMIT, help="Max papers (1-20)")

    find = sub.add_parser("find", help="List possible researchers for a name")
    find.add_argument("name")
    find.add_argument("--affiliation", default="")

    match = sub.add_parser("match", help="Match one researcher against a job")
    _add_job_args(match)
    who = match.add_mutually_exclusive_group(required=True)
    who.add_argument("--id", help="Stored researcher id")
    who.add_argument("--profile-file", help="JSON file with an inline researcher profile")

    match_all = sub.add_parser("match-all", help="Rank every stored researcher against a job")
    _add_job_args(match_all)
    match_all.add_argument("--skills", action="store_true", help="Also extract key skills")

    ask = sub.add_parser("ask", help="Ask a question about a stored researcher")
    ask.add_argument("question")
    ask.add_argument("--id", required=True, help="Stored researcher id")

    search = sub.add_parser("search", help="Search the literature")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=DEFAULT_SEARCH_LIMIT)

    recommend = sub.add_parser("recommend", help="Recommend conference papers for research areas")
    recommend.add_argument("areas", help="Comma-separated research areas")
    recommend.add_argument("--name", default="")
    recommend.add_argument("--affiliation", default="")
    recommend.add_argument("--limit", type=int, default=DEFAULT_RECOMMENDATIONS)
    recommend.add_argument("--conference", default=DEFAULT_CONFERENCE)

    sub.add_parser("list", help="List stored researchers")

    seed = sub.add_parser("seed", help="Load researcher profiles from a JSON file into the store")
    seed.add_argument("file")

    return parser.parse_args(argv)


def _add_job_args(parser: argparse.ArgumentParser) -> None:
    job = parser.add_mutually_exclusive_group(required=True)
    job.add_argument("--job", help="Job description text")
    job.add_argument("--job-file", help="File containing the job description")


def _job_text(args: argparse.Namespace) -> str:
    if args.job_file:
        try:
            return Path(args.job_file).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ValidationError(f"Cannot read job file {args.job_file}: {exc}") from exc
    return args.job


def _load_json(path: str) -> Any:
    """Read a JSON input file; unreadable or malformed files are caller errors."""
    try:
        with Path(path).open(encoding="utf-8") as fh:
            return json.load(fh)
    except OSError as exc:
        raise ValidationError(f"Cannot read {path}: {exc}") from exc
    except ValueError as exc:
        raise ValidationError(f"{path} is not valid JSON: {exc}") from exc


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def run(args: argparse.Namespace, pipeline: ResearchMatchPipeline) -> Any:
    """Execute one subcommand and return its JSON-serializable result."""
    store = pipeline.store

    if args.command == "enrich":
        stored = await pipeline.enrich_profile(args.name, args.affiliation, args.limit)
        store.save(args.store)
        return {"success": True, "data": stored.to_dict()}

    if args.command == "find":
        result = await pipeline.find_researchers(args.name, args.affiliation)
        return {"success": True, "data": result.to_dict()}

    if args.command == "match":
        candidate: str | CandidateProfile = args.id
        if args.profile_file:
            data = _load_json(args.profile_file)
            if not isinstance(data, dict):
                raise ValidationError(f"{args.profile_file} must hold one profile object")
            candidate = CandidateProfile.from_dict(data)
        result = await pipeline.match_one(candidate, _job_text(args))
        return {"success": True, "match": result.to_dict()}

    if args.command == "match-all":
        report = await pipeline.match_all(_job_text(args), extract_skills=args.skills)
        return {
            "success": True,
            "data": report.to_dict(),
            "metadata": {
                "total_researchers": report.total,
                "total_matches": len(report.ranked),
                "cache": pipeline.gateway.cache.stats(),
            },
        }

    if args.command == "ask":
        result = await pipeline.ask_about(args.id, args.question)
        return {"success": True, "answer": result.to_dict()}

    if args.command == "search":
        result = await pipeline.search(args.query, args.limit)
        return {"success": True, "data": result.to_dict()}

    if args.command == "recommend":
        result = await pipeline.recommend_papers(
            args.areas, args.name, args.affiliation, args.limit, args.conference
        )
        return {"success": True, "data": result.to_dict()}

    if args.command == "list":
        profiles = store.get_all()
        return {"success": True, "data": [p.to_dict() for p in profiles], "total": len(profiles)}

    if args.command == "seed":
        seeded = store.seed_records(_load_json(args.file))
        store.save(args.store)
        return {"success": True, "seeded": len(seeded), "total": store.count()}

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute one command."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)

    settings = Settings.from_env()
    if not settings.api_key:
        logging.warning("PERPLEXITY_API_KEY is not set. Completion calls will fail.")
    pipeline = ResearchMatchPipeline(PerplexityGateway(settings), ProfileStore.load(args.store))

    try:
        payload = asyncio.run(run(args, pipeline))
    except (ValidationError, NotFound) as exc:
        _print_json({"success": False, "error": type(exc).__name__, "message": str(exc)})
        return 2
    except (UpstreamUnavailable, ParseError) as exc:
        body = {"success": False, "error": type(exc).__name__, "message": str(exc)}
        if isinstance(exc, ParseError) and exc.raw_text:
            body["details"] = exc.raw_text
        _print_json(body)
        return 1
    except PipelineError as exc:
        logging.exception("Pipeline error: %s", exc)
        _print_json({"success": False, "error": type(exc).__name__, "message": str(exc)})
        return 1

    _print_json(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
