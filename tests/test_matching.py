"""Tests for matching.MatchingEngine and candidate_document."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import Settings
from errors import ParseError
from matching import MatchingEngine, candidate_document, candidate_text
from models import CandidateProfile, MatchResult, Paper
from response_cache import ResponseCache

_PROFILE = CandidateProfile(
    name="Yann LeCun",
    affiliation="New York University",
    summary="Works on deep learning and computer vision.",
    papers=(
        Paper(title="Deep Learning", authors="Yann LeCun", abstract="Representation learning.", url=""),
        Paper(title="Gradient-Based Learning", authors="Yann LeCun", abstract="", url=""),
    ),
)


def _engine(match_mock: AsyncMock) -> MatchingEngine:
    gateway = MagicMock()
    gateway.settings = Settings(api_key="test-key")
    gateway.cache = ResponseCache()
    gateway.match_candidate_to_job = match_mock
    return MatchingEngine(gateway)


def test_candidate_document_combines_summary_and_titles() -> None:
    document = candidate_document(_PROFILE)

    assert document["title"] == "Research Portfolio of Yann LeCun"
    assert document["authors"] == "Yann LeCun"
    assert document["abstract"] == (
        "Works on deep learning and computer vision.\n\n"
        "Top Papers: Deep Learning; Gradient-Based Learning"
    )


def test_candidate_document_without_summary() -> None:
    profile = CandidateProfile(name="Ada", affiliation="X", summary="", papers=_PROFILE.papers)
    assert candidate_document(profile)["abstract"].startswith("Top Papers: Deep Learning")


def test_candidate_text_includes_abstracts() -> None:
    assert "Representation learning." in candidate_text(_PROFILE)


def test_match_calls_gateway_once_per_profile_and_job() -> None:
    match_mock = AsyncMock(return_value=MatchResult(score=81))
    engine = _engine(match_mock)

    first = asyncio.run(engine.match(_PROFILE, "Deep learning researcher"))
    second = asyncio.run(engine.match(_PROFILE, "Deep learning researcher"))

    assert first.score == second.score == 81
    match_mock.assert_awaited_once()
    document, job = match_mock.call_args.args
    assert document == candidate_document(_PROFILE)
    assert job == "Deep learning researcher"


def test_different_job_is_a_cache_miss() -> None:
    match_mock = AsyncMock(side_effect=[MatchResult(score=81), MatchResult(score=40)])
    engine = _engine(match_mock)

    asyncio.run(engine.match(_PROFILE, "Job A"))
    result = asyncio.run(engine.match(_PROFILE, "Job B"))

    assert result.score == 40
    assert match_mock.await_count == 2


def test_gateway_error_propagates_without_retry_or_caching() -> None:
    match_mock = AsyncMock(side_effect=ParseError("no json", raw_text="nope"))
    engine = _engine(match_mock)

    with pytest.raises(ParseError):
        asyncio.run(engine.match(_PROFILE, "Job"))

    assert match_mock.await_count == 1
    assert len(engine.gateway.cache) == 0
