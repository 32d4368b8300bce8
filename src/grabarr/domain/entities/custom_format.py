"""Custom Format Entity - rule-based classifiers with profile-specific scores.

Hey future me - a custom format is a NAMED bundle of specifications:

    CustomFormat("x265", specs=[
        FormatSpecification("HEVC", "release_title", fields={"value": r"x265|hevc"}),
        FormatSpecification("Not Remux", "quality", negate=True, fields={"value": 20}),
    ])

MATCHING:
- Every specification must pass (AND). Result = test(candidate) XOR negate.
- ``required`` does NOT add OR-semantics. It only moves the spec to the front so
  a failing required spec short-circuits the rest.
- A format with zero specifications never matches.

SCORING happens per QUALITY PROFILE (profile.format_scores) - the same format can be
+100 in one profile and -10000 in another. See custom_format_score().

Invalid regexes and unknown implementations are rejected by validate() when the
format is saved, so matching never has to guard against them.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from grabarr.domain.entities.quality_profile import QualityProfile
from grabarr.domain.entities.release import Candidate
from grabarr.domain.exceptions import ValidationError
from grabarr.domain.value_objects import DownloadProtocol, get_quality

_BYTES_PER_GB = 1024**3


class SpecificationImplementation(str, Enum):
    """Kinds of tests a specification can run against a candidate."""

    RELEASE_TITLE = "release_title"
    RELEASE_GROUP = "release_group"
    LANGUAGE = "language"
    QUALITY = "quality"
    SOURCE = "source"
    RESOLUTION = "resolution"
    SIZE = "size"
    INDEXER_FLAG = "indexer_flag"
    PROTOCOL = "protocol"


_REGEX_IMPLEMENTATIONS = {
    SpecificationImplementation.RELEASE_TITLE,
    SpecificationImplementation.RELEASE_GROUP,
}


@dataclass(frozen=True)
class FormatSpecification:
    """A single condition of a custom format."""

    name: str
    implementation: str
    negate: bool = False
    required: bool = False
    fields: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Raises ValidationError when the specification cannot be evaluated."""
        try:
            kind = SpecificationImplementation(self.implementation)
        except ValueError:
            raise ValidationError(
                f"Specification '{self.name}' has unknown implementation "
                f"'{self.implementation}'"
            ) from None

        if kind == SpecificationImplementation.SIZE:
            if self.fields.get("min") is None and self.fields.get("max") is None:
                raise ValidationError(
                    f"Size specification '{self.name}' needs a min or max bound"
                )
            return

        value = self.fields.get("value")
        if value is None or value == "":
            raise ValidationError(f"Specification '{self.name}' has no value")

        if kind in _REGEX_IMPLEMENTATIONS:
            try:
                re.compile(str(value))
            except re.error as e:
                raise ValidationError(
                    f"Specification '{self.name}' has invalid pattern '{value}': {e}"
                ) from e
        elif kind == SpecificationImplementation.QUALITY:
            if get_quality(int(value)) is None:
                raise ValidationError(
                    f"Specification '{self.name}' references unknown quality {value}"
                )
        elif kind == SpecificationImplementation.PROTOCOL:
            try:
                DownloadProtocol.from_string(str(value))
            except ValueError as e:
                raise ValidationError(str(e)) from e

    def matches(self, candidate: Candidate) -> bool:
        """Run the test and apply ``negate``."""
        return _run_test(self, candidate) != self.negate


@dataclass
class CustomFormat:
    """A named classifier matched against candidates."""

    id: int | None
    name: str
    specifications: list[FormatSpecification] = field(default_factory=list)

    def validate(self) -> None:
        """Raises ValidationError for an unusable format. Called at save time."""
        if not self.name or not self.name.strip():
            raise ValidationError("Custom format name cannot be empty")
        for spec in self.specifications:
            spec.validate()

    def evaluation_order(self) -> list[FormatSpecification]:
        """Required specs first, original order kept within each group."""
        return [s for s in self.specifications if s.required] + [
            s for s in self.specifications if not s.required
        ]

    def matches(self, candidate: Candidate) -> bool:
        if not self.specifications:
            return False
        return all(spec.matches(candidate) for spec in self.evaluation_order())


# =============================================================================
# SPECIFICATION TESTS
# =============================================================================


def _regex_search(pattern: Any, value: str | None) -> bool:
    if not value:
        return False
    return re.search(str(pattern), value, re.IGNORECASE) is not None


def _test_release_title(spec: FormatSpecification, candidate: Candidate) -> bool:
    return _regex_search(spec.fields["value"], candidate.title)


def _test_release_group(spec: FormatSpecification, candidate: Candidate) -> bool:
    return _regex_search(spec.fields["value"], candidate.release_group)


def _test_language(spec: FormatSpecification, candidate: Candidate) -> bool:
    wanted = str(spec.fields["value"]).lower()
    return any(language.lower() == wanted for language in candidate.languages)


def _test_quality(spec: FormatSpecification, candidate: Candidate) -> bool:
    return candidate.detected_quality_id == int(spec.fields["value"])


def _test_source(spec: FormatSpecification, candidate: Candidate) -> bool:
    level = get_quality(candidate.detected_quality_id)
    return level is not None and level.source.value == str(spec.fields["value"]).lower()


def _test_resolution(spec: FormatSpecification, candidate: Candidate) -> bool:
    level = get_quality(candidate.detected_quality_id)
    return level is not None and level.resolution == int(spec.fields["value"])


def _test_size(spec: FormatSpecification, candidate: Candidate) -> bool:
    # Bounds are inclusive and in GB; an unknown size (0) never matches
    if candidate.size <= 0:
        return False
    size_gb = candidate.size / _BYTES_PER_GB
    low = spec.fields.get("min")
    high = spec.fields.get("max")
    if low is not None and size_gb < float(low):
        return False
    return not (high is not None and size_gb > float(high))


def _test_indexer_flag(spec: FormatSpecification, candidate: Candidate) -> bool:
    wanted = str(spec.fields["value"]).lower()
    return any(flag.lower() == wanted for flag in candidate.indexer_flags)


def _test_protocol(spec: FormatSpecification, candidate: Candidate) -> bool:
    return candidate.protocol == DownloadProtocol.from_string(str(spec.fields["value"]))


_TESTS: dict[SpecificationImplementation, Callable[[FormatSpecification, Candidate], bool]] = {
    SpecificationImplementation.RELEASE_TITLE: _test_release_title,
    SpecificationImplementation.RELEASE_GROUP: _test_release_group,
    SpecificationImplementation.LANGUAGE: _test_language,
    SpecificationImplementation.QUALITY: _test_quality,
    SpecificationImplementation.SOURCE: _test_source,
    SpecificationImplementation.RESOLUTION: _test_resolution,
    SpecificationImplementation.SIZE: _test_size,
    SpecificationImplementation.INDEXER_FLAG: _test_indexer_flag,
    SpecificationImplementation.PROTOCOL: _test_protocol,
}


def _run_test(spec: FormatSpecification, candidate: Candidate) -> bool:
    return _TESTS[SpecificationImplementation(spec.implementation)](spec, candidate)


# =============================================================================
# MATCHER & SCORER
# =============================================================================


def match_formats(candidate: Candidate, formats: Iterable[CustomFormat]) -> list[int]:
    """Ids of every format the candidate matches."""
    return [fmt.id for fmt in formats if fmt.id is not None and fmt.matches(candidate)]


def custom_format_score(candidate: Candidate, profile: QualityProfile) -> int:
    """Profile score for the candidate's (already derived) matched formats."""
    return profile.format_score(candidate.matched_format_ids)


def score_candidate(
    candidate: Candidate, formats: Iterable[CustomFormat], profile: QualityProfile
) -> Candidate:
    """Derive matched formats and score; returns an enriched copy."""
    matched = match_formats(candidate, formats)
    return candidate.with_formats(matched, profile.format_score(matched))
