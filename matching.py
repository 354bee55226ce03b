"""Single-candidate matching: profile -> one synthetic document -> gateway score."""

from __future__ import annotations

import logging
from typing import Any

from models import CandidateProfile, MatchResult
from perplexity_client import PerplexityGateway

LOGGER = logging.getLogger(__name__)

MATCH_OPERATION = "match_candidate_to_job"
MAX_DOCUMENT_PAPERS = 10


def candidate_document(profile: CandidateProfile) -> dict[str, str]:
    """Collapse a multi-paper profile into one abstract-like submission."""
    titles = "; ".join(p.title for p in profile.papers[:MAX_DOCUMENT_PAPERS] if p.title)
    abstract = profile.summary
    if titles:
        abstract = f"{abstract}\n\nTop Papers: {titles}" if abstract else f"Top Papers: {titles}"
    return {
        "title": f"Research Portfolio of {profile.name}",
        "abstract": abstract,
        "authors": profile.name,
    }


def researcher_context(profile: CandidateProfile) -> dict[str, Any]:
    """Question-answering context for a stored profile."""
    return {
        "name": profile.name,
        "institution": profile.affiliation,
        "bio": profile.summary,
        "papers": [{"title": p.title, "abstract": p.abstract} for p in profile.papers],
    }


def candidate_text(profile: CandidateProfile) -> str:
    """Plain text used by the offline fallback scorer."""
    document = candidate_document(profile)
    abstracts = " ".join(p.abstract for p in profile.papers if p.abstract)
    return f"{document['title']} {document['abstract']} {abstracts}".strip()


class MatchingEngine:
    """Scores candidates through the gateway, memoized in the gateway's cache.

    Gateway errors propagate unchanged; retries and fallback belong to the caller.
    """

    def __init__(self, gateway: PerplexityGateway) -> None:
        self.gateway = gateway

    async def match(self, profile: CandidateProfile, job_text: str) -> MatchResult:
        document = candidate_document(profile)
        params = {"candidate": document, "job": job_text}

        cached = self.gateway.cache.get(MATCH_OPERATION, params)
        if cached is not None:
            LOGGER.info("Match cache hit for %s", profile.name)
            return cached

        result = await self.gateway.match_candidate_to_job(document, job_text)
        self.gateway.cache.set(MATCH_OPERATION, params, result)
        LOGGER.info("Matched %s: %s/100", profile.name, result.score)
        return result
