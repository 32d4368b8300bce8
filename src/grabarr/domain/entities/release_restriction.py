"""Release Restriction Entity - plain term filters on release titles.

Hey future me - restrictions are the blunt tool next to custom formats. No scoring,
a release either passes or is rejected:

    must_contain      empty, or at least ONE term appears in the title
    must_not_contain  NO term appears in the title

Matching is a case-insensitive substring test, no regex, no word boundaries.
A restriction with tags only applies to titles sharing at least one of them, an
untagged restriction applies to everything. Every applicable restriction must pass.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from grabarr.domain.exceptions import ValidationError


@dataclass
class ReleaseRestriction:
    """Named must-contain / must-not-contain term lists."""

    id: int | None
    name: str
    must_contain: list[str] = field(default_factory=list)
    must_not_contain: list[str] = field(default_factory=list)
    tags: set[str] = field(default_factory=set)

    def validate(self) -> None:
        """Raises ValidationError for an unusable restriction. Called at save time."""
        if not self.name or not self.name.strip():
            raise ValidationError("Release restriction name cannot be empty")
        for term in (*self.must_contain, *self.must_not_contain):
            if not term.strip():
                raise ValidationError(
                    f"Release restriction '{self.name}' contains an empty term"
                )

    def applies_to(self, title_tags: Iterable[str]) -> bool:
        return not self.tags or not self.tags.isdisjoint(title_tags)

    def violation(self, release_title: str) -> str | None:
        """Why the title fails this restriction, or None when it passes."""
        title = release_title.lower()
        if self.must_contain and not any(t.lower() in title for t in self.must_contain):
            return f"Does not contain any of: {', '.join(self.must_contain)}"
        for term in self.must_not_contain:
            if term.lower() in title:
                return f"Contains forbidden term: {term}"
        return None


def check_restrictions(
    release_title: str,
    restrictions: Iterable[ReleaseRestriction],
    title_tags: Iterable[str],
) -> str | None:
    """First violation among the restrictions that apply to the title, else None."""
    tags = set(title_tags)
    for restriction in restrictions:
        if not restriction.applies_to(tags):
            continue
        reason = restriction.violation(release_title)
        if reason is not None:
            return reason
    return None
