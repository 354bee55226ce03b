"""In-memory researcher profile store with an optional JSON snapshot file."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from errors import ValidationError
from models import CandidateProfile, StoredProfile, profile_key

LOGGER = logging.getLogger(__name__)


class ProfileStore:
    """Profiles keyed by normalized name + affiliation.

    A re-fetched profile supersedes the stored one; only ``created_at`` carries over.
    """

    def __init__(self) -> None:
        self._profiles: dict[str, StoredProfile] = {}

    def upsert(self, profile: CandidateProfile) -> StoredProfile:
        key = profile_key(profile.name, profile.affiliation)
        now = datetime.now(UTC).isoformat()
        existing = self._profiles.get(key)
        stored = StoredProfile(
            id=key,
            name=profile.name,
            affiliation=profile.affiliation,
            summary=profile.summary,
            papers=profile.papers,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._profiles[key] = stored
        LOGGER.info("Saved researcher profile: %s", key)
        return stored

    def get(self, name: str, affiliation: str) -> StoredProfile | None:
        return self._profiles.get(profile_key(name, affiliation))

    def get_by_id(self, profile_id: str) -> StoredProfile | None:
        return self._profiles.get(profile_id)

    def get_all(self) -> list[StoredProfile]:
        """All profiles, most recently updated first."""
        return sorted(self._profiles.values(), key=lambda p: p.updated_at, reverse=True)

    def delete(self, name: str, affiliation: str) -> bool:
        return self._profiles.pop(profile_key(name, affiliation), None) is not None

    def count(self) -> int:
        return len(self._profiles)

    def clear(self) -> None:
        self._profiles.clear()

    def save(self, path: str | Path) -> None:
        """Write a JSON snapshot. Convenience for the CLI, not a durability guarantee."""
        path = Path(path)
        payload = [p.to_dict() for p in self.get_all()]
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        LOGGER.info("Wrote %s profiles to %s", len(payload), path)

    @classmethod
    def load(cls, path: str | Path) -> ProfileStore:
        """Read a snapshot written by ``save``; a missing file gives an empty store."""
        store = cls()
        path = Path(path)
        if not path.exists():
            return store
        with path.open(encoding="utf-8") as fh:
            records = json.load(fh)
        for record in records:
            stored = StoredProfile.from_dict(record)
            store._profiles[stored.id] = stored
        LOGGER.info("Loaded %s profiles from %s", store.count(), path)
        return store

    def seed(self, path: str | Path) -> list[StoredProfile]:
        """Upsert every profile in a JSON list file (e.g. sample researchers)."""
        with Path(path).open(encoding="utf-8") as fh:
            records = json.load(fh)
        return self.seed_records(records)

    def seed_records(self, records: Any) -> list[StoredProfile]:
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise ValidationError("Seed data must be a JSON list of profile objects")
        profiles = [CandidateProfile.from_dict(r) for r in records]
        if any(not p.name.strip() for p in profiles):
            raise ValidationError("Every seeded profile needs a name")
        return [self.upsert(p) for p in profiles]
