"""Tests for pipeline.ResearchMatchPipeline fallback and enrichment policy."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from errors import NotFound, ParseError, UpstreamUnavailable, ValidationError
from models import (
    CandidateProfile,
    Citation,
    MatchResult,
    Paper,
    QAResult,
    RawProfile,
    Recommendations,
    ResearcherCandidates,
    SearchResult,
)
from perplexity_client import MAX_PROFILE_PAPERS
from pipeline import ResearchMatchPipeline
from profile_store import ProfileStore
from response_cache import ResponseCache


def _pipeline(store: ProfileStore | None = None) -> ResearchMatchPipeline:
    gateway = MagicMock()
    gateway.cache = ResponseCache()
    gateway.match_candidate_to_job = AsyncMock(return_value=MatchResult(score=88))
    gateway.answer_question = AsyncMock(return_value=QAResult(answer="Yes."))
    gateway.search_literature = AsyncMock(return_value=SearchResult(papers=()))
    gateway.find_researchers = AsyncMock(return_value=ResearcherCandidates(candidates=()))
    gateway.fetch_profile = AsyncMock()
    gateway.recommend_papers = AsyncMock(
        return_value=Recommendations(conference="NeurIPS 2024", areas=("RLHF",))
    )
    return ResearchMatchPipeline(gateway, store or ProfileStore())


def _lecun() -> CandidateProfile:
    return CandidateProfile(
        name="Yann LeCun",
        affiliation="New York University",
        summary="Deep learning pioneer.",
        papers=(Paper(title="Deep Learning", authors="Yann LeCun", abstract="", url=""),),
    )


def _raw_lecun() -> RawProfile:
    return RawProfile(
        name="Yann LeCun",
        affiliation="NYU",
        summary="Deep learning pioneer.",
        papers=(
            Paper(title="Deep Learning", authors="Yann LeCun, Y. Bengio", abstract="", url=""),
            Paper(title="Attention", authors="A. Vaswani", abstract="", url=""),
        ),
        citations=(Citation(url="https://scholar.google.com"),),
    )


# ---------------------------------------------------------------------------
# match_one
# ---------------------------------------------------------------------------

def test_match_one_by_stored_id() -> None:
    store = ProfileStore()
    stored = store.upsert(_lecun())
    pipeline = _pipeline(store)

    result = asyncio.run(pipeline.match_one(stored.id, "Deep learning researcher"))

    assert result.score == 88
    assert result.used_fallback is False


@pytest.mark.parametrize("error", [
    ParseError("no json", raw_text="I cannot help"),
    UpstreamUnavailable("HTTP 503"),
])
def test_match_one_falls_back_on_upstream_failure(error: Exception) -> None:
    pipeline = _pipeline()
    pipeline.gateway.match_candidate_to_job.side_effect = error

    result = asyncio.run(pipeline.match_one(_lecun(), "We need deep learning experience."))

    assert result.used_fallback is True
    assert result.score >= 78
    assert len(result.alignment) >= 3


def test_match_one_unknown_id() -> None:
    with pytest.raises(NotFound):
        asyncio.run(_pipeline().match_one("nobody_nowhere", "Job"))


def test_match_one_rejects_empty_job() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(_pipeline().match_one(_lecun(), "   "))


def test_match_one_does_not_hide_programming_errors() -> None:
    pipeline = _pipeline()
    pipeline.gateway.match_candidate_to_job.side_effect = KeyError("score")

    with pytest.raises(KeyError):
        asyncio.run(pipeline.match_one(_lecun(), "Job"))


# ---------------------------------------------------------------------------
# match_all
# ---------------------------------------------------------------------------

def test_match_all_ranks_store_and_reports_failures() -> None:
    store = ProfileStore()
    store.upsert(_lecun())
    store.upsert(CandidateProfile(name="Geoffrey Hinton", affiliation="Toronto", summary=""))
    pipeline = _pipeline(store)

    async def fake_match(document: dict, job_text: str) -> MatchResult:
        if document["authors"] == "Geoffrey Hinton":
            raise UpstreamUnavailable("HTTP 429")
        return MatchResult(score=91)

    pipeline.gateway.match_candidate_to_job.side_effect = fake_match

    report = asyncio.run(pipeline.match_all("Deep learning researcher"))

    assert [m.profile.name for m in report.ranked] == ["Yann LeCun"]
    assert [f.name for f in report.failures] == ["Geoffrey Hinton"]
    assert report.to_dict()["total_analyzed"] == 2


def test_match_all_empty_store() -> None:
    report = asyncio.run(_pipeline().match_all("Job"))
    assert report.ranked == () and report.total == 0


# ---------------------------------------------------------------------------
# enrich_profile
# ---------------------------------------------------------------------------

def test_enrich_sanitizes_and_persists() -> None:
    pipeline = _pipeline()
    pipeline.gateway.fetch_profile.return_value = _raw_lecun()

    stored = asyncio.run(pipeline.enrich_profile(" Yann LeCun ", "New York University", limit=5))

    assert stored.id == "yann-lecun_new-york-university"
    assert stored.affiliation == "New York University"
    assert [p.title for p in stored.papers] == ["Deep Learning"]
    assert stored.papers[0].url.startswith("https://scholar.google.com/scholar?q=")
    assert pipeline.store.count() == 1
    pipeline.gateway.fetch_profile.assert_awaited_once_with("Yann LeCun", "New York University", 5)


def test_enrich_clamps_limit() -> None:
    pipeline = _pipeline()
    pipeline.gateway.fetch_profile.return_value = _raw_lecun()

    asyncio.run(pipeline.enrich_profile("Yann LeCun", "NYU", limit=500))

    assert pipeline.gateway.fetch_profile.call_args.args[2] == MAX_PROFILE_PAPERS


def test_enrich_parse_failure_surfaces_raw_text_and_stores_nothing() -> None:
    pipeline = _pipeline()
    pipeline.gateway.fetch_profile.side_effect = ParseError("No JSON object found", raw_text="Sorry")

    with pytest.raises(ParseError) as excinfo:
        asyncio.run(pipeline.enrich_profile("Yann LeCun", "NYU"))

    assert "Yann LeCun" in str(excinfo.value)
    assert excinfo.value.raw_text == "Sorry"
    assert pipeline.store.count() == 0


def test_enrich_upstream_failure_is_not_masked() -> None:
    pipeline = _pipeline()
    pipeline.gateway.fetch_profile.side_effect = UpstreamUnavailable("HTTP 500")

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(pipeline.enrich_profile("Yann LeCun", "NYU"))
    assert pipeline.store.count() == 0


def test_enrich_with_no_verified_papers_stores_nothing() -> None:
    pipeline = _pipeline()
    pipeline.gateway.fetch_profile.return_value = RawProfile(
        name="Yann LeCun",
        affiliation="NYU",
        summary="",
        papers=(Paper(title="Attention", authors="A. Vaswani", abstract="", url=""),),
    )

    with pytest.raises(ValidationError):
        asyncio.run(pipeline.enrich_profile("Yann LeCun", "NYU"))
    assert pipeline.store.count() == 0


@pytest.mark.parametrize("name, affiliation", [("", "NYU"), ("Yann LeCun", "  ")])
def test_enrich_requires_name_and_affiliation(name: str, affiliation: str) -> None:
    pipeline = _pipeline()
    with pytest.raises(ValidationError):
        asyncio.run(pipeline.enrich_profile(name, affiliation))
    pipeline.gateway.fetch_profile.assert_not_awaited()


# ---------------------------------------------------------------------------
# Q&A, search, find
# ---------------------------------------------------------------------------

def test_ask_about_uses_stored_profile_context() -> None:
    store = ProfileStore()
    stored = store.upsert(_lecun())
    pipeline = _pipeline(store)

    result = asyncio.run(pipeline.ask_about(stored.id, "Does he work on vision?"))

    assert result.answer == "Yes."
    _, context = pipeline.gateway.answer_question.call_args.args
    assert context["name"] == "Yann LeCun"
    assert context["papers"][0]["title"] == "Deep Learning"


def test_ask_falls_back() -> None:
    pipeline = _pipeline()
    pipeline.gateway.answer_question.side_effect = UpstreamUnavailable("down")

    result = asyncio.run(pipeline.ask("What are their publications?", {"name": "Ada", "papers": []}))

    assert result.used_fallback is True


def test_ask_requires_name_in_context() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(_pipeline().ask("Anything?", {}))


def test_search_falls_back() -> None:
    pipeline = _pipeline()
    pipeline.gateway.search_literature.side_effect = ParseError("bad", raw_text="")

    result = asyncio.run(pipeline.search("scalable oversight"))

    assert result.used_fallback is True
    assert result.papers == ()


def test_search_fallback_honors_limit() -> None:
    pipeline = _pipeline()
    pipeline.gateway.search_literature.side_effect = UpstreamUnavailable("down")

    result = asyncio.run(pipeline.search("alignment rlhf", limit=2))

    assert len(result.papers) == 2


def test_find_researchers_falls_back() -> None:
    pipeline = _pipeline()
    pipeline.gateway.find_researchers.side_effect = UpstreamUnavailable("down")

    result = asyncio.run(pipeline.find_researchers("Ada Lovelace", "Cambridge"))

    assert result.used_fallback is True
    assert result.candidates[0].name == "Ada Lovelace"


def test_find_researchers_requires_name() -> None:
    with pytest.raises(ValidationError):
        asyncio.run(_pipeline().find_researchers("  "))


# ---------------------------------------------------------------------------
# recommend_papers
# ---------------------------------------------------------------------------

def test_recommend_papers_splits_and_trims_areas() -> None:
    pipeline = _pipeline()

    asyncio.run(pipeline.recommend_papers(" RLHF , ,Interpretability ", name=" Ada ", limit=3))

    pipeline.gateway.recommend_papers.assert_awaited_once_with(
        ("RLHF", "Interpretability"), "Ada", "", 3, "NeurIPS 2024"
    )


@pytest.mark.parametrize("error", [ParseError("bad", raw_text="x"), UpstreamUnavailable("down")])
def test_recommend_papers_falls_back(error: Exception) -> None:
    pipeline = _pipeline()
    pipeline.gateway.recommend_papers.side_effect = error

    result = asyncio.run(pipeline.recommend_papers(["RLHF"]))

    assert result.used_fallback is True
    assert result.papers == ()
    assert result.areas == ("RLHF",)
    assert result.message


@pytest.mark.parametrize("areas", ["", " , ", []])
def test_recommend_papers_requires_areas(areas: object) -> None:
    pipeline = _pipeline()
    with pytest.raises(ValidationError):
        asyncio.run(pipeline.recommend_papers(areas))
    pipeline.gateway.recommend_papers.assert_not_awaited()


def test_enrich_with_unencodable_title_stores_valid_url() -> None:
    pipeline = _pipeline()
    pipeline.gateway.fetch_profile.return_value = RawProfile(
        name="Yann LeCun",
        affiliation="NYU",
        summary="",
        papers=(Paper(title="Deep \ud800 Learning", authors="Yann LeCun", abstract="", url=""),),
    )

    stored = asyncio.run(pipeline.enrich_profile("Yann LeCun", "NYU"))

    assert stored.papers[0].url.startswith("https://scholar.google.com/scholar?q=")
    stored.papers[0].url.encode("ascii")
