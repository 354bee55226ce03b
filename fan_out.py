"""Concurrent matching of every known candidate against one job description."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from matching import MatchingEngine, researcher_context
from models import (
    CandidateProfile,
    FanOutReport,
    MatchFailed,
    MatchOutcome,
    MatchSucceeded,
    RankedMatch,
)

LOGGER = logging.getLogger(__name__)

SKILLS_QUESTION = (
    "List ONLY the top 5-7 most relevant technical skills and research areas from this "
    "researcher's work. Be CONCISE - use short items of 3-5 words each (e.g. \"Deep Learning\", "
    "\"Computer Vision\", \"PyTorch/TensorFlow\"). No explanations, just skill names."
)


async def _match_one(
    engine: MatchingEngine,
    profile: CandidateProfile,
    job_text: str,
    extract_skills: bool,
) -> MatchSucceeded:
    if not extract_skills:
        result = await engine.match(profile, job_text)
        return MatchSucceeded(candidate_id=profile.key, profile=profile, result=result)

    result, skills = await asyncio.gather(
        engine.match(profile, job_text),
        engine.gateway.answer_question(SKILLS_QUESTION, researcher_context(profile)),
    )
    return MatchSucceeded(
        candidate_id=profile.key,
        profile=profile,
        result=result,
        extracted_skills=skills.answer,
    )


async def match_all_candidates(
    engine: MatchingEngine,
    candidates: Sequence[CandidateProfile],
    job_text: str,
    extract_skills: bool = False,
) -> FanOutReport:
    """Match every candidate concurrently and rank the survivors.

    A failing candidate never aborts the batch: it is recorded as MatchFailed
    and left out of the ranking. Every settlement is collected before sorting,
    so rank order depends on scores only. Ties keep input order.
    """
    LOGGER.info("Matching %s candidates against job description", len(candidates))
    settled = await asyncio.gather(
        *(_match_one(engine, c, job_text, extract_skills) for c in candidates),
        return_exceptions=True,
    )

    outcomes: list[MatchOutcome] = []
    for profile, outcome in zip(candidates, settled):
        if isinstance(outcome, MatchSucceeded):
            outcomes.append(outcome)
            continue
        if not isinstance(outcome, Exception):
            # CancelledError and other BaseExceptions are not per-candidate failures.
            raise outcome
        LOGGER.warning("Match failed for %s (%s): %s", profile.name, profile.key, outcome)
        outcomes.append(
            MatchFailed(
                candidate_id=profile.key,
                name=profile.name,
                reason=f"{type(outcome).__name__}: {outcome}",
            )
        )

    succeeded = [o for o in outcomes if isinstance(o, MatchSucceeded)]
    failures = tuple(o for o in outcomes if isinstance(o, MatchFailed))
    ranked = sorted(succeeded, key=lambda o: o.result.score, reverse=True)

    LOGGER.info(
        "Fan-out complete: total=%s matched=%s failed=%s",
        len(candidates),
        len(ranked),
        len(failures),
    )
    return FanOutReport(
        ranked=tuple(
            RankedMatch(profile=o.profile, result=o.result, extracted_skills=o.extracted_skills)
            for o in ranked
        ),
        failures=failures,
        total=len(candidates),
        outcomes=tuple(outcomes),
    )
