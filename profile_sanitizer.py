"""Post-fetch validation of researcher profiles: authorship, dedup, URL repair."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from urllib.parse import quote, urlsplit

from errors import ValidationError
from models import CandidateProfile, Paper, RawProfile

LOGGER = logging.getLogger(__name__)

SCHOLAR_SEARCH_URL = "https://scholar.google.com/scholar?q="

# Surnames this short match too many unrelated author lists on their own.
_MIN_BARE_LASTNAME_LEN = 5

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

# Substrings marking a URL as a search page or a placeholder rather than a paper.
_BAD_URL_MARKERS: tuple[str, ...] = (
    "search?q=",
    "example",
)


def is_author(authors: str, researcher_name: str) -> bool:
    """Return True if ``researcher_name`` plausibly appears in ``authors``.

    Tiers, first hit wins:
    1. full name as a substring
    2. "last, f" / "f. last" / "f last"
    3. bare last name, only for last names longer than four characters
    """
    name = _WHITESPACE_RE.sub(" ", researcher_name.strip().lower())
    if not name:
        return False
    authors_lower = _WHITESPACE_RE.sub(" ", authors.lower())

    if name in authors_lower:
        return True

    parts = name.split(" ")
    first, last = parts[0], parts[-1]
    initial, last_re = re.escape(first[0]), re.escape(last)
    initial_patterns = (
        rf"\b{last_re}, {initial}",
        rf"\b{initial}\.? {last_re}\b",
    )
    if any(re.search(pattern, authors_lower) for pattern in initial_patterns):
        return True

    return len(last) >= _MIN_BARE_LASTNAME_LEN and last in authors_lower


def verify_authorship(papers: list[Paper], researcher_name: str) -> list[Paper]:
    """Drop papers whose author list does not contain the researcher."""
    kept = []
    for paper in papers:
        if is_author(paper.authors, researcher_name):
            kept.append(paper)
        else:
            LOGGER.info(
                "Dropped paper without matching author: title=%r authors=%r looking_for=%r",
                paper.title,
                paper.authors,
                researcher_name,
            )
    return kept


def normalize_title(title: str) -> str:
    text = _PUNCTUATION_RE.sub("", title.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def dedupe_papers(papers: list[Paper]) -> list[Paper]:
    """Keep the first paper per normalized title, preserving order."""
    seen: set[str] = set()
    unique = []
    for paper in papers:
        key = normalize_title(paper.title)
        if key in seen:
            LOGGER.info("Removed duplicate paper: %s", paper.title)
            continue
        seen.add(key)
        unique.append(paper)
    return unique


def is_valid_paper_url(url: str) -> bool:
    """Return True for a well-formed http(s) URL that is not a search or placeholder page."""
    url = url.strip()
    if not url or any(marker in url for marker in _BAD_URL_MARKERS):
        return False
    if any(ch.isspace() for ch in url):
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def scholar_search_url(query: str) -> str:
    """Google Scholar search link; unencodable characters (lone surrogates) become '?'."""
    return SCHOLAR_SEARCH_URL + quote(query.encode("utf-8", "replace"), safe="")


def fallback_paper_url(title: str, researcher_name: str) -> str:
    return scholar_search_url(f'"{title}" {researcher_name}')


def repair_urls(papers: list[Paper], researcher_name: str) -> list[Paper]:
    """Give every paper a navigable link, falling back to a Scholar search."""
    repaired = []
    for paper in papers:
        if is_valid_paper_url(paper.url) or paper.url.startswith(SCHOLAR_SEARCH_URL):
            repaired.append(paper)
            continue
        LOGGER.info("Generated fallback URL for: %s", paper.title)
        repaired.append(replace(paper, url=fallback_paper_url(paper.title, researcher_name)))
    return repaired


def sanitize_profile(raw: RawProfile, researcher_name: str, limit: int) -> CandidateProfile:
    """Run the full sanitization pass on a freshly fetched profile.

    Raises ValidationError for an empty name or when no paper survives.
    """
    researcher_name = researcher_name.strip()
    if not researcher_name:
        raise ValidationError("Researcher name must not be empty")

    received = len(raw.papers)
    papers = verify_authorship(list(raw.papers), researcher_name)
    papers = dedupe_papers(papers)
    papers = repair_urls(papers, researcher_name)
    papers = papers[: max(1, limit)]

    LOGGER.info(
        "Sanitized profile for %s: received=%s kept=%s (limit=%s)",
        researcher_name,
        received,
        len(papers),
        limit,
    )
    if not papers:
        raise ValidationError(
            f"No verified papers for {researcher_name!r}: "
            f"all {received} fetched papers were rejected"
        )

    return CandidateProfile(
        name=raw.name or researcher_name,
        affiliation=raw.affiliation,
        summary=raw.summary,
        papers=tuple(papers),
    )
