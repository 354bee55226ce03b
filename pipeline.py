"""Caller-facing surface: matching, enrichment, Q&A and search with fallback policy."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from errors import NotFound, ParseError, UpstreamUnavailable, ValidationError
from fallback import (
    fallback_answer,
    fallback_match,
    fallback_recommendations,
    fallback_researcher_candidates,
    fallback_search,
)
from fan_out import match_all_candidates
from matching import MatchingEngine, candidate_text, researcher_context
from models import (
    CandidateProfile,
    FanOutReport,
    MatchResult,
    QAResult,
    Recommendations,
    ResearcherCandidates,
    SearchResult,
    StoredProfile,
)
from perplexity_client import (
    DEFAULT_CONFERENCE,
    DEFAULT_RECOMMENDATIONS,
    DEFAULT_SEARCH_LIMIT,
    MAX_PROFILE_PAPERS,
    PerplexityGateway,
)
from profile_sanitizer import sanitize_profile
from profile_store import ProfileStore

LOGGER = logging.getLogger(__name__)

DEFAULT_PAPER_LIMIT = 10

# Errors that mean "the upstream let us down", as opposed to bad caller input.
_RECOVERABLE = (UpstreamUnavailable, ParseError)


class ResearchMatchPipeline:
    """Ties gateway, matching engine, fan-out, sanitizer and store together.

    Matching, Q&A and search degrade to the offline fallback (flagged with
    ``used_fallback``) when the service is down or unparseable. Profile
    enrichment never does: its failures reach the caller with diagnostics.
    """

    def __init__(self, gateway: PerplexityGateway, store: ProfileStore) -> None:
        self.gateway = gateway
        self.store = store
        self.engine = MatchingEngine(gateway)

    def _resolve(self, candidate: str | CandidateProfile) -> CandidateProfile:
        if isinstance(candidate, CandidateProfile):
            if not candidate.name.strip():
                raise ValidationError("Inline candidate must have a name")
            return candidate
        stored = self.store.get_by_id(candidate)
        if stored is None:
            raise NotFound(f"No researcher with id {candidate!r}")
        return stored.to_candidate()

    async def match_one(self, candidate: str | CandidateProfile, job_text: str) -> MatchResult:
        if not job_text.strip():
            raise ValidationError("Job description must not be empty")
        profile = self._resolve(candidate)
        try:
            return await self.engine.match(profile, job_text)
        except _RECOVERABLE as exc:
            LOGGER.warning("Match for %s fell back to keyword scoring: %s", profile.name, exc)
            return fallback_match(job_text, candidate_text(profile))

    async def match_all(self, job_text: str, extract_skills: bool = False) -> FanOutReport:
        """Rank every stored researcher; failed candidates are listed, never raised."""
        if not job_text.strip():
            raise ValidationError("Job description must not be empty")
        candidates = [p.to_candidate() for p in self.store.get_all()]
        if not candidates:
            LOGGER.warning("No researchers in store; nothing to match")
        return await match_all_candidates(
            self.engine, candidates, job_text, extract_skills=extract_skills
        )

    async def enrich_profile(
        self, name: str, affiliation: str, limit: int = DEFAULT_PAPER_LIMIT
    ) -> StoredProfile:
        """Fetch, sanitize and persist a researcher profile.

        Upstream and parse failures are re-raised with their diagnostic text;
        nothing is stored in that case.
        """
        name, affiliation = name.strip(), affiliation.strip()
        if not name or not affiliation:
            raise ValidationError('Both "name" and "affiliation" are required')
        limit = min(max(1, limit), MAX_PROFILE_PAPERS)

        try:
            raw = await self.gateway.fetch_profile(name, affiliation, limit)
        except ParseError as exc:
            LOGGER.error("Profile fetch for %s returned unparseable output: %s", name, exc)
            raise ParseError(
                f"Failed to fetch researcher profile for {name!r}: {exc}", raw_text=exc.raw_text
            ) from exc
        except UpstreamUnavailable as exc:
            LOGGER.error("Profile fetch for %s failed: %s", name, exc)
            raise UpstreamUnavailable(
                f"Failed to fetch researcher profile for {name!r}: {exc}"
            ) from exc

        LOGGER.info("Received %s papers for %s", len(raw.papers), name)
        profile = sanitize_profile(raw, name, limit)
        # Store under the requested identity so later lookups by the same inputs hit.
        profile = replace(profile, name=name, affiliation=affiliation)
        return self.store.upsert(profile)

    async def ask(self, question: str, context: dict[str, Any]) -> QAResult:
        if not question.strip():
            raise ValidationError("Question must not be empty")
        if not context.get("name"):
            raise ValidationError("Researcher context must include a name")
        try:
            return await self.gateway.answer_question(question, context)
        except _RECOVERABLE as exc:
            LOGGER.warning("Q&A fell back to canned answer: %s", exc)
            return fallback_answer(question, context)

    async def ask_about(self, candidate_id: str, question: str) -> QAResult:
        profile = self._resolve(candidate_id)
        return await self.ask(question, researcher_context(profile))

    async def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResult:
        if not query.strip():
            raise ValidationError("Search query must not be empty")
        try:
            return await self.gateway.search_literature(query, limit)
        except _RECOVERABLE as exc:
            LOGGER.warning("Literature search fell back to offline result: %s", exc)
            return fallback_search(query, limit)

    async def find_researchers(self, name: str, affiliation: str = "") -> ResearcherCandidates:
        if not name.strip():
            raise ValidationError('The "name" parameter is required')
        try:
            return await self.gateway.find_researchers(name, affiliation)
        except _RECOVERABLE as exc:
            LOGGER.warning("Researcher lookup fell back to echoing input: %s", exc)
            return fallback_researcher_candidates(name, affiliation)

    async def recommend_papers(
        self,
        areas: str | list[str] | tuple[str, ...],
        name: str = "",
        affiliation: str = "",
        limit: int = DEFAULT_RECOMMENDATIONS,
        conference: str = DEFAULT_CONFERENCE,
    ) -> Recommendations:
        """Conference papers for a set of research areas (comma-separated or a list)."""
        if isinstance(areas, str):
            areas = areas.split(",")
        cleaned = tuple(a.strip() for a in areas if a.strip())
        if not cleaned:
            raise ValidationError('The "areas" parameter is required')
        try:
            return await self.gateway.recommend_papers(
                cleaned, name.strip(), affiliation.strip(), limit, conference
            )
        except _RECOVERABLE as exc:
            LOGGER.warning("Paper recommendations unavailable: %s", exc)
            return fallback_recommendations(cleaned, conference)
