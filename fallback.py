"""Deterministic keyword-driven substitutes for gateway operations (no LLM calls).

Used when the completion service is unreachable or replies with unparseable
text. Every result is flagged ``used_fallback=True``. Profile fetches never fall
back here: a synthetic researcher profile could be persisted as fact.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from models import (
    Citation,
    MatchResult,
    QAResult,
    Recommendations,
    ResearcherCandidate,
    ResearcherCandidates,
    SearchPaper,
    SearchResult,
)
from perplexity_client import DEFAULT_CONFERENCE, DEFAULT_SEARCH_LIMIT
from profile_sanitizer import scholar_search_url

BASE_SCORE = 70
MAX_SCORE = 96
MIN_ALIGNMENT_POINTS = 3
MAX_ALIGNMENT_POINTS = 5

# A rule adds its points once when any term appears in both the job text and
# the candidate text.
_SCORE_RULES: tuple[tuple[tuple[str, ...], int], ...] = (
    (("ai safety", "safety", "alignment"), 10),
    (("machine learning", "ml", "deep learning"), 8),
    (("research", "phd", "publication"), 5),
    (("scalable", "production", "deployment"), 7),
    (("interpretability", "explainability"), 6),
    (("oversight", "supervision", "monitoring"), 8),
)

# Alignment phrase emitted when a word in the job text starts with any term
# ("research" also covers "researchers").
_ALIGNMENT_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("ai safety", "safety"), "Strong research focus on AI safety aligns with role requirements"),
    (("scalable", "oversight"), "Demonstrated expertise in scalable oversight mechanisms"),
    (("research", "publication"), "Proven track record with peer-reviewed publications"),
    (("team", "collaboration"), "Evidence of collaborative research with cross-functional teams"),
    (("production", "industry"), "Research has practical applications in production systems"),
)

_FILLER_ALIGNMENT = "Technical expertise relevant to the role requirements"

_FALLBACK_CITATIONS = (
    Citation(url="https://scholar.google.com/citations", title="Google Scholar - Research Citations"),
    Citation(url="https://arxiv.org", title="arXiv - Research Papers"),
)

# Query words shorter than this ("a", "of", "ai") would boost nearly every paper.
_MIN_QUERY_TERM_LEN = 3


@dataclass(frozen=True, slots=True)
class _OfflinePaper:
    title: str
    authors: str
    abstract: str
    relevance: int
    topics: tuple[str, ...]


# Well-known papers offered when live search is unavailable. Links are built as
# Scholar searches so no paper URL is ever made up.
_OFFLINE_PAPERS: tuple[_OfflinePaper, ...] = (
    _OfflinePaper(
        title="AI Safety via Debate",
        authors="G Irving, P Christiano, D Amodei",
        abstract=(
            "Proposes training agents through a zero-sum debate game judged by a human, so that "
            "humans can supervise systems performing tasks beyond their own expertise."
        ),
        relevance=95,
        topics=("ai safety", "alignment", "scalable oversight", "debate"),
    ),
    _OfflinePaper(
        title="Constitutional AI: Harmlessness from AI Feedback",
        authors="Y Bai, S Kadavath, S Kundu, A Askell",
        abstract=(
            "Trains a harmless assistant from AI-generated feedback guided by a short list of "
            "principles, reducing reliance on human harmfulness labels."
        ),
        relevance=92,
        topics=("ai safety", "alignment", "constitutional ai", "rlhf"),
    ),
    _OfflinePaper(
        title="Scalable Agent Alignment via Reward Modeling: A Research Direction",
        authors="J Leike, D Krueger, T Everitt, M Martic, V Maini, S Legg",
        abstract=(
            "Outlines recursive reward modeling, where agents trained with learned reward models "
            "assist humans in evaluating more capable agents."
        ),
        relevance=90,
        topics=("alignment", "reward modeling", "scalable oversight", "rlhf"),
    ),
    _OfflinePaper(
        title="Deep Reinforcement Learning from Human Preferences",
        authors="P Christiano, J Leike, T Brown, M Martic, S Legg, D Amodei",
        abstract=(
            "Learns reward functions from human comparisons of trajectory segments, solving "
            "complex tasks with feedback on less than one percent of agent interactions."
        ),
        relevance=88,
        topics=("rlhf", "reinforcement learning", "human feedback", "alignment"),
    ),
    _OfflinePaper(
        title="Towards Monosemanticity: Decomposing Language Models With Dictionary Learning",
        authors="T Bricken, A Templeton, J Batson, C Olah",
        abstract=(
            "Uses sparse autoencoders to extract interpretable features from transformer "
            "activations, yielding units that respond to single concepts."
        ),
        relevance=86,
        topics=("interpretability", "mechanistic", "sparse autoencoders", "neural networks"),
    ),
    _OfflinePaper(
        title="Concrete Problems in AI Safety",
        authors="D Amodei, C Olah, J Steinhardt, P Christiano, J Schulman, D Mane",
        abstract=(
            "Catalogues practical accident risks in machine learning systems, including reward "
            "hacking, safe exploration and robustness to distributional shift."
        ),
        relevance=85,
        topics=("ai safety", "robustness", "reward hacking", "machine learning"),
    ),
    _OfflinePaper(
        title="Universal and Transferable Adversarial Attacks on Aligned Language Models",
        authors="A Zou, Z Wang, J Z Kolter, M Fredrikson",
        abstract=(
            "Finds adversarial suffixes that make aligned language models produce objectionable "
            "content, with attacks transferring across open and closed models."
        ),
        relevance=82,
        topics=("adversarial", "robustness", "llm security", "language models"),
    ),
    _OfflinePaper(
        title="Training Language Models to Follow Instructions with Human Feedback",
        authors="L Ouyang, J Wu, X Jiang, D Almeida",
        abstract=(
            "Fine-tunes language models with supervised demonstrations and reinforcement "
            "learning from human feedback, improving instruction following and truthfulness."
        ),
        relevance=80,
        topics=("rlhf", "language models", "alignment", "instruction following"),
    ),
)


def _mentions(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text) is not None


def _has_word_prefix(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}", text) is not None


def fallback_score(job_text: str, candidate_text: str) -> int:
    job = job_text.lower()
    candidate = candidate_text.lower()
    score = BASE_SCORE
    for terms, points in _SCORE_RULES:
        if any(_mentions(job, t) and _mentions(candidate, t) for t in terms):
            score += points
    return min(score, MAX_SCORE)


def fallback_match(job_text: str, candidate_text: str) -> MatchResult:
    """Rule-based match result; same inputs always give the same output."""
    job = job_text.lower()
    score = fallback_score(job_text, candidate_text)

    alignment = [
        phrase
        for terms, phrase in _ALIGNMENT_RULES
        if any(_has_word_prefix(job, t) for t in terms)
    ]
    while len(alignment) < MIN_ALIGNMENT_POINTS:
        alignment.append(_FILLER_ALIGNMENT)

    gaps = []
    if score < 85 and not _mentions(job, "industry"):
        gaps.append("Limited explicit industry experience mentioned in publications")

    strength = "strong" if score >= 85 else "good"
    return MatchResult(
        score=score,
        alignment=tuple(alignment[:MAX_ALIGNMENT_POINTS]),
        gaps=tuple(gaps),
        relevance=(
            f"This research demonstrates {strength} alignment with the job requirements "
            "based on keyword overlap between the role and the candidate's work."
        ),
        citations=_FALLBACK_CITATIONS,
        used_fallback=True,
    )


def fallback_answer(question: str, context: dict[str, Any]) -> QAResult:
    """Canned answer chosen by question keywords."""
    q = question.lower()
    name = str(context.get("name") or "This researcher")
    papers = context.get("papers") or []
    experience = " ".join(str(e) for e in context.get("experience") or []).lower()

    if "industry" in q:
        if any(org in experience for org in ("openai", "deepmind", "google", "microsoft", "meta")):
            answer = (
                f"{name} lists positions at industry research labs, which suggests experience "
                "with production ML systems and industry teams."
            )
            return _qa(answer, "high", ("Work experience section",))
        answer = (
            f"Based on the available profile, {name} appears to have primarily academic "
            "experience; industry roles are not prominently mentioned."
        )
        return _qa(answer, "medium", ("Profile analysis",))

    if "production" in q or "ml systems" in q:
        answer = (
            f"{name}'s publications discuss practical implementations, which points to some "
            "hands-on exposure to deploying ML systems."
        )
        return _qa(answer, "medium", ("Research papers", "Abstract analysis"))

    if any(word in q for word in ("team", "collaboration", "lead")):
        answer = (
            f"{name} has {len(papers)} listed publications, most with several co-authors, "
            "indicating regular collaboration with other researchers."
        )
        return _qa(answer, "medium", ("Publication record", "Co-authorship patterns"))

    if any(word in q for word in ("programming", "framework", "code")):
        answer = (
            f"{name} most likely works in Python with common deep learning frameworks, as is "
            "typical for the research areas in their publications."
        )
        return _qa(answer, "low", ("Research methodology",))

    if any(word in q for word in ("present", "conference", "speaking")):
        answer = (
            f"{name} has published at research venues, which usually involves presenting "
            "talks or posters."
        )
        return _qa(answer, "medium", ("Conference publications",))

    institution = context.get("institution") or "their institution"
    answer = (
        f"Based on {name}'s profile, including {len(papers)} publications and work at "
        f"{institution}, the available information does not answer \"{question}\" directly. "
        "Reviewing their publications or an interview is recommended."
    )
    return _qa(answer, "low", ("General profile analysis",))


def _qa(answer: str, confidence: str, sources: tuple[str, ...]) -> QAResult:
    return QAResult(
        answer=answer,
        confidence=confidence,
        sources=sources,
        citations=(Citation(url="https://scholar.google.com", title="Google Scholar"),),
        used_fallback=True,
    )


def _rank_offline_papers(query: str) -> list[tuple[int, _OfflinePaper]]:
    """Papers sharing at least one query term, best first; ties keep table order."""
    terms = [t for t in re.findall(r"\w+", query.lower()) if len(t) >= _MIN_QUERY_TERM_LEN]
    ranked = []
    for paper in _OFFLINE_PAPERS:
        title, abstract = paper.title.lower(), paper.abstract.lower()
        boost = 0
        for term in terms:
            if any(_has_word_prefix(topic, term) for topic in paper.topics):
                boost += 5
            if _has_word_prefix(title, term):
                boost += 3
            if _has_word_prefix(abstract, term):
                boost += 2
        if boost:
            ranked.append((min(paper.relevance + boost, 100), paper))
    ranked.sort(key=lambda item: item[0], reverse=True)
    return ranked


def fallback_search(query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResult:
    """Rank a fixed table of well-known papers by overlap with the query terms."""
    papers = tuple(
        SearchPaper(
            title=paper.title,
            authors=paper.authors,
            abstract=paper.abstract,
            url=scholar_search_url(f'"{paper.title}"'),
            relevance=relevance,
        )
        for relevance, paper in _rank_offline_papers(query)[: max(1, limit)]
    )
    return SearchResult(
        papers=papers,
        citations=(Citation(url=scholar_search_url(query), title="Google Scholar search"),),
        used_fallback=True,
    )


def fallback_recommendations(
    areas: tuple[str, ...], conference: str = DEFAULT_CONFERENCE
) -> Recommendations:
    """Conference programs cannot be known offline, so nothing is recommended."""
    return Recommendations(
        conference=conference,
        areas=areas,
        papers=(),
        message=f"Unable to find {conference} papers at this time. Please try again later.",
        used_fallback=True,
    )


def fallback_researcher_candidates(name: str, affiliation: str = "") -> ResearcherCandidates:
    return ResearcherCandidates(
        candidates=(
            ResearcherCandidate(
                name=name,
                affiliation=affiliation or "Unknown",
                description="Please verify this is the correct researcher",
                confidence="medium" if affiliation else "low",
            ),
        ),
        used_fallback=True,
    )
