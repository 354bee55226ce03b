"""Shared typed models for the matching pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")


def profile_key(name: str, affiliation: str) -> str:
    """Identity key for a researcher: normalized name + affiliation."""
    return "{}_{}".format(
        _WHITESPACE_RE.sub("-", name.strip().lower()),
        _WHITESPACE_RE.sub("-", affiliation.strip().lower()),
    )


@dataclass(frozen=True, slots=True)
class Paper:
    """Publication record as returned by the completion service."""

    title: str
    authors: str
    abstract: str
    url: str
    year: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "authors": self.authors,
            "abstract": self.abstract,
            "url": self.url,
        }
        if self.year:
            data["year"] = self.year
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Paper:
        year = data.get("year")
        return cls(
            title=_as_str(data.get("title")),
            authors=_as_str(data.get("authors")),
            abstract=_as_str(data.get("abstract")),
            url=_as_str(data.get("url")),
            year=str(year).strip() if year not in (None, "") else None,
        )


@dataclass(frozen=True, slots=True)
class Citation:
    url: str
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "title": self.title} if self.title else {"url": self.url}


@dataclass(frozen=True, slots=True)
class CandidateProfile:
    """Researcher profile being scored against a job description."""

    name: str
    affiliation: str
    summary: str
    papers: tuple[Paper, ...] = ()
    id: str = ""

    @property
    def key(self) -> str:
        return self.id or profile_key(self.name, self.affiliation)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.key,
            "name": self.name,
            "affiliation": self.affiliation,
            "summary": self.summary,
            "papers": [p.to_dict() for p in self.papers],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CandidateProfile:
        papers = data.get("papers") or data.get("topPapers") or []
        return cls(
            name=_as_str(data.get("name")),
            affiliation=_as_str(data.get("affiliation")),
            summary=_as_str(data.get("summary")),
            papers=tuple(Paper.from_dict(p) for p in papers if isinstance(p, dict)),
            id=_as_str(data.get("id")),
        )


@dataclass(frozen=True, slots=True)
class StoredProfile:
    """Profile as held by the profile store, with bookkeeping timestamps."""

    id: str
    name: str
    affiliation: str
    summary: str
    papers: tuple[Paper, ...]
    created_at: str
    updated_at: str

    def to_candidate(self) -> CandidateProfile:
        return CandidateProfile(
            name=self.name,
            affiliation=self.affiliation,
            summary=self.summary,
            papers=self.papers,
            id=self.id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "affiliation": self.affiliation,
            "summary": self.summary,
            "papers": [p.to_dict() for p in self.papers],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredProfile:
        profile = CandidateProfile.from_dict(data)
        return cls(
            id=profile.key,
            name=profile.name,
            affiliation=profile.affiliation,
            summary=profile.summary,
            papers=profile.papers,
            created_at=_as_str(data.get("created_at")),
            updated_at=_as_str(data.get("updated_at")),
        )


@dataclass(frozen=True, slots=True)
class RawProfile:
    """Unsanitized output of a profile fetch. Never persisted as-is."""

    name: str
    affiliation: str
    summary: str
    papers: tuple[Paper, ...]
    citations: tuple[Citation, ...] = ()


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Advisory score of one candidate against one job description."""

    score: int
    alignment: tuple[str, ...] = ()
    gaps: tuple[str, ...] = ()
    relevance: str = ""
    citations: tuple[Citation, ...] = ()
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "alignment": list(self.alignment),
            "gaps": list(self.gaps),
            "relevance": self.relevance,
            "citations": [c.to_dict() for c in self.citations],
            "used_fallback": self.used_fallback,
        }


@dataclass(frozen=True, slots=True)
class QAResult:
    answer: str
    confidence: str = "medium"
    sources: tuple[str, ...] = ()
    citations: tuple[Citation, ...] = ()
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "confidence": self.confidence,
            "sources": list(self.sources),
            "citations": [c.to_dict() for c in self.citations],
            "used_fallback": self.used_fallback,
        }


@dataclass(frozen=True, slots=True)
class SearchPaper:
    """Search hit; relevance is an upstream hint, not a trusted ranking."""

    title: str
    authors: str
    abstract: str
    url: str
    relevance: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "authors": self.authors,
            "abstract": self.abstract,
            "url": self.url,
            "relevance": self.relevance,
        }


@dataclass(frozen=True, slots=True)
class SearchResult:
    papers: tuple[SearchPaper, ...] = ()
    citations: tuple[Citation, ...] = ()
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "papers": [p.to_dict() for p in self.papers],
            "citations": [c.to_dict() for c in self.citations],
            "used_fallback": self.used_fallback,
        }


@dataclass(frozen=True, slots=True)
class ResearcherCandidate:
    """Possible identity match for a name/affiliation lookup."""

    name: str
    affiliation: str
    description: str = ""
    confidence: str = "medium"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "affiliation": self.affiliation,
            "description": self.description,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class ResearcherCandidates:
    candidates: tuple[ResearcherCandidate, ...] = ()
    citations: tuple[Citation, ...] = ()
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "citations": [c.to_dict() for c in self.citations],
            "used_fallback": self.used_fallback,
        }


@dataclass(frozen=True, slots=True)
class PaperRecommendation:
    """Conference paper suggested for a researcher; ``relevance`` is a one-line reason."""

    title: str
    authors: str
    abstract: str
    url: str
    relevance: str = ""
    match_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "authors": self.authors,
            "abstract": self.abstract,
            "url": self.url,
            "relevance": self.relevance,
            "match_score": self.match_score,
        }


@dataclass(frozen=True, slots=True)
class Recommendations:
    conference: str
    areas: tuple[str, ...]
    papers: tuple[PaperRecommendation, ...] = ()
    citations: tuple[Citation, ...] = ()
    message: str = ""
    used_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "conference": self.conference,
            "areas_searched": list(self.areas),
            "papers": [p.to_dict() for p in self.papers],
            "citations": [c.to_dict() for c in self.citations],
            "used_fallback": self.used_fallback,
        }
        if self.message:
            data["message"] = self.message
        return data


# --- Fan-out outcomes -------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MatchSucceeded:
    candidate_id: str
    profile: CandidateProfile
    result: MatchResult
    extracted_skills: str = ""


@dataclass(frozen=True, slots=True)
class MatchFailed:
    """A candidate excluded from a fan-out batch, and why."""

    candidate_id: str
    name: str
    reason: str


MatchOutcome = MatchSucceeded | MatchFailed


@dataclass(frozen=True, slots=True)
class RankedMatch:
    profile: CandidateProfile
    result: MatchResult
    extracted_skills: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "researcher": self.profile.to_dict(),
            "match": self.result.to_dict(),
        }
        if self.extracted_skills:
            data["match"]["extracted_skills"] = self.extracted_skills
        return data


@dataclass(frozen=True, slots=True)
class FanOutReport:
    """Every settlement of one fan-out batch; `ranked` holds survivors by score."""

    ranked: tuple[RankedMatch, ...] = ()
    failures: tuple[MatchFailed, ...] = ()
    total: int = 0
    outcomes: tuple[MatchOutcome, ...] = field(default=(), repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": [m.to_dict() for m in self.ranked],
            "failures": [
                {"id": f.candidate_id, "name": f.name, "reason": f.reason} for f in self.failures
            ],
            "total_analyzed": self.total,
        }


def clean_text(text: str) -> str:
    """Replace characters UTF-8 cannot encode (lone surrogates from JSON escapes) with "?"."""
    return text.encode("utf-8", "replace").decode("utf-8")


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return clean_text(value if isinstance(value, str) else str(value)).strip()
