"""Perplexity completion gateway: prompts, one round-trip per ask, typed parsing."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from json import JSONDecodeError
from typing import Any

import openai
from openai import AsyncOpenAI

from config import Settings
from errors import ParseError, UpstreamUnavailable
from models import (
    Citation,
    MatchResult,
    Paper,
    PaperRecommendation,
    QAResult,
    RawProfile,
    Recommendations,
    ResearcherCandidate,
    ResearcherCandidates,
    SearchPaper,
    SearchResult,
    clean_text,
)
from response_cache import ResponseCache

LOGGER = logging.getLogger(__name__)

MAX_PROFILE_PAPERS = 20
DEFAULT_SEARCH_LIMIT = 10
DEFAULT_CONFERENCE = "NeurIPS 2024"
DEFAULT_RECOMMENDATIONS = 5
MAX_RECOMMENDATIONS = 10
MAX_ALIGNMENT_POINTS = 5
_CONFIDENCE_LEVELS = ("high", "medium", "low")

_MATCH_SYSTEM_PROMPT = """You are an expert AI research recruiter specializing in matching research work to job requirements.
Analyze the alignment between research work and job needs. Provide:
1. A match score (0-100)
2. Key alignment points (3-5 specific matches)
3. Any gaps or missing qualifications
4. Overall relevance assessment

Focus on technical skills, research areas, methodologies, and practical applications."""

_QA_SYSTEM_PROMPT = """You are an expert research analyst providing insights about AI researchers based on their publications and background.
Answer questions accurately using the provided context. Include confidence level and cite specific sources.
Be honest about limitations - if information isn't available, say so."""

_SEARCH_SYSTEM_PROMPT = """You are a research paper search assistant. Find relevant academic papers based on the query.
Focus on papers from arXiv, Google Scholar, and GitHub repositories.
Return papers with title, authors, abstract, URL, and relevance score."""

_PROFILE_SYSTEM_PROMPT = """You are a research profile assistant with access to Google Scholar, arXiv and publisher pages.
Only report publications you can verify. Never invent papers, authors or URLs.
The researcher MUST appear in the author list of every paper you return.
Respond only with valid JSON, no markdown."""

_FIND_SYSTEM_PROMPT = """You are a researcher search assistant. Find potential researcher matches on Google Scholar and return a list of candidates for the user to choose from."""

_RECOMMEND_SYSTEM_PROMPT = """You are a research paper recommendation assistant specializing in {conference} papers.
Find the most relevant and impactful papers from {conference} that align with the given research areas."""


@dataclass(frozen=True, slots=True)
class Completion:
    content: str
    citations: tuple[Citation, ...] = ()


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first balanced ``{...}`` region of a completion reply.

    Replies often wrap the JSON in prose or markdown fences. Only the first
    region is tried; anything that does not decode to an object raises
    ParseError carrying the raw text.
    """
    start = text.find("{")
    if start == -1:
        raise ParseError("No JSON object found in completion reply", raw_text=text)

    end = _balanced_end(text, start)
    if end == -1:
        raise ParseError("Unbalanced JSON object in completion reply", raw_text=text)

    try:
        parsed = json.loads(text[start : end + 1])
    except JSONDecodeError as exc:
        raise ParseError(f"Invalid JSON in completion reply: {exc}", raw_text=text) from exc

    if not isinstance(parsed, dict):
        raise ParseError("Expected JSON object in completion reply", raw_text=text)
    return parsed


def _balanced_end(text: str, start: int) -> int:
    """Index of the brace closing the one at ``start``, or -1. Skips string literals."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


class PerplexityGateway:
    """Builds prompts, calls the completion service, and parses typed results.

    The gateway owns its response cache. Create one per configuration and pass
    it to whatever needs it.
    """

    def __init__(
        self,
        settings: Settings,
        cache: ResponseCache | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache if cache is not None else ResponseCache(settings.cache_ttl_seconds)
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.api_key:
                raise UpstreamUnavailable("PERPLEXITY_API_KEY environment variable is required")
            self._client = AsyncOpenAI(
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                timeout=self.settings.timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def complete(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
    ) -> Completion:
        """One round-trip to the completion service."""
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.settings.model,
                messages=messages,
                temperature=self.settings.temperature,
                max_tokens=max_tokens or self.settings.max_tokens,
                extra_body={
                    "return_citations": True,
                    "search_domain_filter": list(self.settings.search_domains),
                },
            )
        except openai.APIStatusError as exc:
            raise UpstreamUnavailable(
                f"Perplexity API error ({exc.status_code}): {exc.message}"
            ) from exc
        except openai.APIError as exc:
            raise UpstreamUnavailable(f"Perplexity API request failed: {exc}") from exc

        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as exc:
            raise UpstreamUnavailable(f"Unexpected Perplexity response shape: {response}") from exc

        raw_citations = getattr(response, "citations", None)
        citations = tuple(
            Citation(url=url)
            for url in (raw_citations if isinstance(raw_citations, list) else [])
            if isinstance(url, str) and url
        )
        return Completion(content=content, citations=citations)

    # --- operations ---------------------------------------------------------

    async def match_candidate_to_job(
        self, candidate: dict[str, str], job_text: str
    ) -> MatchResult:
        """Score one candidate document against a job. Raises ParseError on bad replies."""
        context = (
            f"Title: {candidate.get('title', '')}\n"
            f"Authors: {candidate.get('authors') or 'N/A'}\n"
            f"Topics: {candidate.get('topics') or 'N/A'}\n"
            f"Abstract: {candidate.get('abstract', '')}\n"
        )
        user_prompt = f"""Analyze this research work against the job requirements:

{context}
Job Requirements:
{job_text}

Provide a JSON response with this exact structure:
{{
  "matchScore": <number 0-100>,
  "alignment": [<array of 3-5 specific alignment points>],
  "gaps": [<array of any gaps or concerns>],
  "relevance": "<brief overall assessment>"
}}"""
        completion = await self.complete(
            [
                {"role": "system", "content": _MATCH_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ]
        )
        parsed = extract_json_object(completion.content)
        return MatchResult(
            score=_clamp_int(parsed.get("matchScore", parsed.get("score")), 0, 100),
            alignment=_str_tuple(parsed.get("alignment"))[:MAX_ALIGNMENT_POINTS],
            gaps=_str_tuple(parsed.get("gaps")),
            relevance=_str(parsed.get("relevance")),
            citations=completion.citations,
        )

    async def answer_question(self, question: str, context: dict[str, Any]) -> QAResult:
        params = {"question": question, "context": context}
        cached = self.cache.get("answer_question", params)
        if cached is not None:
            return cached

        user_prompt = f"""Based on this researcher's profile, answer the following question:

{_researcher_context(context)}
Question: {question}

Provide a JSON response with:
{{
  "answer": "<detailed answer based on context>",
  "confidence": "<high/medium/low>",
  "sources": [<specific papers, experience items, or bio details used>]
}}"""
        completion = await self.complete(
            [
                {"role": "system", "content": _QA_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ]
        )
        parsed = extract_json_object(completion.content)
        confidence = _str(parsed.get("confidence")).lower()
        result = QAResult(
            answer=_str(parsed.get("answer")),
            confidence=confidence if confidence in _CONFIDENCE_LEVELS else "medium",
            sources=_str_tuple(parsed.get("sources")),
            citations=completion.citations,
        )
        self.cache.set("answer_question", params, result)
        return result

    async def search_literature(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> SearchResult:
        limit = max(1, limit)
        params = {"query": query, "limit": limit}
        cached = self.cache.get("search_literature", params)
        if cached is not None:
            return cached

        user_prompt = f"""Find recent research papers related to: {query}

Provide a JSON response with:
{{
  "papers": [
    {{
      "title": "<paper title>",
      "authors": "<author names>",
      "abstract": "<brief abstract or summary>",
      "url": "<paper URL>",
      "relevance": <score 0-100>
    }}
  ]
}}

Return at most {limit} of the most relevant papers."""
        completion = await self.complete(
            [
                {"role": "system", "content": _SEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ]
        )
        parsed = extract_json_object(completion.content)
        papers = tuple(
            SearchPaper(
                title=_str(item.get("title")),
                authors=_str(item.get("authors")),
                abstract=_str(item.get("abstract")),
                url=_str(item.get("url")),
                relevance=_clamp_int(item.get("relevance"), 0, 100),
            )
            for item in _dict_list(parsed.get("papers"))
        )[:limit]
        result = SearchResult(papers=papers, citations=completion.citations)
        self.cache.set("search_literature", params, result)
        return result

    async def fetch_profile(self, name: str, affiliation: str, paper_limit: int) -> RawProfile:
        """Ask the service to browse the literature for a researcher.

        Not cached and never substituted: a ParseError or UpstreamUnavailable
        reaches the caller, because a fabricated profile could be persisted.
        """
        paper_limit = min(max(1, paper_limit), MAX_PROFILE_PAPERS)
        user_prompt = f"""Search Google Scholar and arXiv for the researcher "{name}" at "{affiliation}".

Return ONLY this JSON format:
{{
  "name": "{name}",
  "affiliation": "{affiliation}",
  "summary": "<3-4 paragraph professional summary of their research>",
  "papers": [
    {{
      "title": "<exact paper title>",
      "authors": "<full author list as printed on the paper>",
      "abstract": "<2-3 sentence abstract>",
      "url": "<direct link to the paper>",
      "year": "<publication year>"
    }}
  ]
}}

Return up to {paper_limit} of their most cited papers. Include only papers where {name} is an author."""
        LOGGER.info(
            "Fetching profile for %s at %s (paper_limit=%s)", name, affiliation, paper_limit
        )
        completion = await self.complete(
            [
                {"role": "system", "content": _PROFILE_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max(self.settings.max_tokens, 400 * paper_limit),
        )
        parsed = extract_json_object(completion.content)
        papers = parsed.get("papers", parsed.get("topPapers"))
        return RawProfile(
            name=_str(parsed.get("name")) or name,
            affiliation=_str(parsed.get("affiliation")) or affiliation,
            summary=_str(parsed.get("summary")),
            papers=tuple(Paper.from_dict(item) for item in _dict_list(papers)),
            citations=completion.citations,
        )

    async def find_researchers(self, name: str, affiliation: str = "") -> ResearcherCandidates:
        """List possible identities for a researcher name, best match first."""
        params = {"name": name, "affiliation": affiliation}
        cached = self.cache.get("find_researchers", params)
        if cached is not None:
            return cached

        where = f' at "{affiliation}"' if affiliation else ""
        user_prompt = f"""Find researchers named "{name}"{where} on Google Scholar. Return up to 5 possible matches with their institution and brief description.

Return ONLY this JSON format:
{{
  "candidates": [
    {{
      "name": "Full Name",
      "affiliation": "Institution Name",
      "description": "Brief research focus description",
      "confidence": "high|medium|low"
    }}
  ]
}}

Return 3-5 most likely matches. If there's an exact match with high confidence, put it first."""
        completion = await self.complete(
            [
                {"role": "system", "content": _FIND_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=1500,
        )
        parsed = extract_json_object(completion.content)
        candidates = []
        for item in _dict_list(parsed.get("candidates"))[:5]:
            confidence = _str(item.get("confidence")).lower()
            candidates.append(
                ResearcherCandidate(
                    name=_str(item.get("name")),
                    affiliation=_str(item.get("affiliation")),
                    description=_str(item.get("description")),
                    confidence=confidence if confidence in _CONFIDENCE_LEVELS else "medium",
                )
            )
        result = ResearcherCandidates(candidates=tuple(candidates), citations=completion.citations)
        self.cache.set("find_researchers", params, result)
        return result

    async def recommend_papers(
        self,
        areas: tuple[str, ...],
        name: str = "",
        affiliation: str = "",
        limit: int = DEFAULT_RECOMMENDATIONS,
        conference: str = DEFAULT_CONFERENCE,
    ) -> Recommendations:
        """Top papers from one conference for a researcher's areas, in the service's order."""
        limit = min(max(1, limit), MAX_RECOMMENDATIONS)
        params = {
            "areas": list(areas),
            "name": name,
            "affiliation": affiliation,
            "limit": limit,
            "conference": conference,
        }
        cached = self.cache.get("recommend_papers", params)
        if cached is not None:
            return cached

        who = ""
        if name:
            who += f"Researcher: {name}\n"
        if affiliation:
            who += f"Affiliation: {affiliation}\n"
        user_prompt = f"""Find the TOP {limit} most relevant papers from {conference} that align with these research areas:

Research Areas: {", ".join(areas)}
{who}
Search for ACTUAL {conference} papers. Return ONLY papers from the {conference} conference.

Provide response in JSON format:
{{
  "papers": [
    {{
      "title": "Exact paper title from {conference}",
      "authors": "Author names",
      "abstract": "Brief abstract or summary (2-3 sentences)",
      "url": "Paper URL (arXiv or conference proceedings)",
      "relevance": "Why this paper is relevant to the researcher (1 sentence)",
      "match_score": <number 0-100 indicating relevance>
    }}
  ]
}}

Return {limit} papers, ranked by relevance (highest first).
Focus on papers that:
- Are from {conference}
- Directly relate to the research areas
- Are highly cited or impactful"""
        completion = await self.complete(
            [
                {"role": "system", "content": _RECOMMEND_SYSTEM_PROMPT.format(conference=conference)},
                {"role": "user", "content": user_prompt},
            ],
            max_tokens=max(self.settings.max_tokens, 2500),
        )
        parsed = extract_json_object(completion.content)
        papers = tuple(
            PaperRecommendation(
                title=_str(item.get("title")),
                authors=_str(item.get("authors")),
                abstract=_str(item.get("abstract")),
                url=_str(item.get("url")),
                relevance=_str(item.get("relevance")),
                match_score=_clamp_int(item.get("match_score"), 0, 100),
            )
            for item in _dict_list(parsed.get("papers"))
        )[:limit]
        LOGGER.info("Found %s %s recommendations for %s", len(papers), conference, ", ".join(areas))
        result = Recommendations(
            conference=conference,
            areas=areas,
            papers=papers,
            citations=completion.citations,
        )
        self.cache.set("recommend_papers", params, result)
        return result


def _researcher_context(context: dict[str, Any]) -> str:
    papers = _dict_list(context.get("papers"))
    lines = []
    for index, paper in enumerate(papers, start=1):
        line = f"{index}. {_str(paper.get('title'))}"
        if paper.get("abstract"):
            line += f"\n   Abstract: {_str(paper.get('abstract'))}"
        lines.append(line)
    experience = context.get("experience") or []
    return (
        f"Researcher: {_str(context.get('name'))}\n"
        f"Institution: {_str(context.get('institution')) or 'N/A'}\n"
        f"Bio: {_str(context.get('bio')) or 'N/A'}\n\n"
        f"Experience:\n{chr(10).join(_str_tuple(experience)) or 'N/A'}\n\n"
        f"Publications:\n{chr(10).join(lines) or 'N/A'}\n"
    )


def _clamp_int(value: Any, low: int, high: int) -> int:
    """Coerce to int and clamp; missing or non-numeric values become ``low``."""
    if isinstance(value, bool):
        return low
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return low
    return max(low, min(high, number))


def _str(value: Any) -> str:
    if value is None:
        return ""
    return clean_text(value if isinstance(value, str) else str(value)).strip()


def _str_tuple(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return ()
    return tuple(s for s in (_str(v) for v in value if v is not None) if s)


def _dict_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
