"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://api.perplexity.ai"
DEFAULT_MODEL = "sonar-pro"
DEFAULT_SEARCH_DOMAINS = ("arxiv.org", "scholar.google.com", "github.com")
DEFAULT_CACHE_TTL_SECONDS = 30 * 60


@dataclass(frozen=True, slots=True)
class Settings:
    """Completion-service credentials and tuning knobs.

    Built once per process (or per test) and handed to the gateway explicitly;
    nothing reads these values from module globals.
    """

    api_key: str = ""
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    temperature: float = 0.2
    max_tokens: int = 2000
    timeout_seconds: float = 60.0
    search_domains: tuple[str, ...] = DEFAULT_SEARCH_DOMAINS
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS

    @classmethod
    def from_env(cls) -> Settings:
        domains = os.getenv("PERPLEXITY_SEARCH_DOMAINS")
        return cls(
            api_key=os.getenv("PERPLEXITY_API_KEY", ""),
            model=os.getenv("PERPLEXITY_MODEL", DEFAULT_MODEL),
            base_url=os.getenv("PERPLEXITY_BASE_URL", DEFAULT_BASE_URL),
            temperature=float(os.getenv("PERPLEXITY_TEMPERATURE", "0.2")),
            max_tokens=int(os.getenv("PERPLEXITY_MAX_TOKENS", "2000")),
            timeout_seconds=float(os.getenv("PERPLEXITY_TIMEOUT_SECONDS", "60")),
            search_domains=(
                tuple(d.strip() for d in domains.split(",") if d.strip())
                if domains
                else DEFAULT_SEARCH_DOMAINS
            ),
            cache_ttl_seconds=float(
                os.getenv("CACHE_TTL_SECONDS", str(DEFAULT_CACHE_TTL_SECONDS))
            ),
        )
