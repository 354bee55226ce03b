import pytest

from fallback import (
    BASE_SCORE,
    MAX_SCORE,
    fallback_answer,
    fallback_match,
    fallback_recommendations,
    fallback_researcher_candidates,
    fallback_score,
    fallback_search,
)
from profile_sanitizer import SCHOLAR_SEARCH_URL


def test_no_keyword_overlap_gives_base_score() -> None:
    assert fallback_score("Frontend engineer, React", "Protein folding") == BASE_SCORE


def test_keyword_must_appear_in_both_texts() -> None:
    assert fallback_score("deep learning role", "Protein folding") == BASE_SCORE
    assert fallback_score("Protein folding", "deep learning papers") == BASE_SCORE


def test_deep_learning_scenario_scores_above_base() -> None:
    job = "We need deep learning, scalable oversight experience."
    candidate = "Research Portfolio of Yann LeCun Top Papers: Deep Learning"

    result = fallback_match(job, candidate)

    assert result.score >= BASE_SCORE + 8
    assert result.used_fallback is True


def test_each_rule_counts_once() -> None:
    job = "machine learning, deep learning, ML"
    candidate = "machine learning and deep learning and ML"
    assert fallback_score(job, candidate) == BASE_SCORE + 8


def test_terms_match_on_word_boundaries() -> None:
    assert fallback_score("ml engineer", "html templates") == BASE_SCORE


def test_score_is_capped() -> None:
    text = (
        "ai safety alignment machine learning research phd scalable production "
        "interpretability oversight monitoring"
    )
    assert fallback_score(text, text) == MAX_SCORE


def test_fallback_is_deterministic() -> None:
    job = "AI safety research with a collaborative team"
    candidate = "Safety research on reward models"
    assert fallback_match(job, candidate) == fallback_match(job, candidate)


@pytest.mark.parametrize("job", ["", "Python developer", "AI safety research team in production"])
def test_alignment_has_three_to_five_points(job: str) -> None:
    result = fallback_match(job, "anything")
    assert 3 <= len(result.alignment) <= 5


def test_alignment_reflects_job_keywords() -> None:
    result = fallback_match("Scalable oversight for AI safety", "x")
    assert any("AI safety" in a for a in result.alignment)
    assert any("scalable oversight" in a for a in result.alignment)


def test_alignment_phrases_match_word_prefixes() -> None:
    result = fallback_match("Join our researchers and publish", "x")
    assert "Proven track record with peer-reviewed publications" in result.alignment

    assert not any("collaborative" in a for a in fallback_match("steam engines", "x").alignment)


def test_gap_reported_for_low_score_without_industry() -> None:
    assert fallback_match("Python developer", "x").gaps
    assert not fallback_match("industry Python developer", "x").gaps


def test_fallback_answer_industry_with_lab_experience() -> None:
    context = {"name": "Ada", "experience": ["Research Scientist, DeepMind"], "papers": []}
    result = fallback_answer("Does she have industry experience?", context)
    assert result.confidence == "high"
    assert result.used_fallback is True


def test_fallback_answer_default_is_low_confidence() -> None:
    result = fallback_answer("What is their favourite color?", {"name": "Ada", "papers": [{}]})
    assert result.confidence == "low"
    assert "favourite color" in result.answer


def test_fallback_search_ranks_offline_papers_by_query() -> None:
    result = fallback_search("scalable oversight")

    assert result.papers
    assert result.papers[0].title == "AI Safety via Debate"
    relevances = [p.relevance for p in result.papers]
    assert relevances == sorted(relevances, reverse=True)
    assert all(p.url.startswith(SCHOLAR_SEARCH_URL) for p in result.papers)
    assert result.citations[0].url.endswith("scalable%20oversight")
    assert result.used_fallback is True


def test_fallback_search_is_deterministic_and_honors_limit() -> None:
    full = fallback_search("alignment rlhf", limit=10)
    limited = fallback_search("alignment rlhf", limit=2)

    assert fallback_search("alignment rlhf", limit=10) == full
    assert len(full.papers) > 2
    assert limited.papers == full.papers[:2]


def test_fallback_search_without_matching_terms_returns_nothing() -> None:
    assert fallback_search("protein folding").papers == ()


def test_fallback_search_matches_word_prefixes() -> None:
    titles = [p.title for p in fallback_search("interpret").papers]
    assert titles == ["Towards Monosemanticity: Decomposing Language Models With Dictionary Learning"]


def test_fallback_recommendations_are_empty_with_message() -> None:
    result = fallback_recommendations(("RLHF",), conference="ICML 2024")

    assert result.papers == ()
    assert "ICML 2024" in result.message
    assert result.used_fallback is True


def test_fallback_researcher_candidates_echoes_input() -> None:
    with_affiliation = fallback_researcher_candidates("Ada Lovelace", "Cambridge")
    without = fallback_researcher_candidates("Ada Lovelace")

    assert with_affiliation.candidates[0].confidence == "medium"
    assert without.candidates[0].affiliation == "Unknown"
    assert without.candidates[0].confidence == "low"
