"""WCAG standards and the axe-core rule tags each one selects."""

from __future__ import annotations

import enum


class Standard(enum.Enum):
    """A named rule-tag set. Fixed for the whole run."""

    WCAG2A = "wcag2a"
    WCAG2AA = "wcag2aa"
    WCAG2AAA = "wcag2aaa"
    WCAG21A = "wcag21a"
    WCAG21AA = "wcag21aa"
    WCAG21AAA = "wcag21aaa"
    WCAG22AA = "wcag22aa"
    SECTION508 = "section508"
    BEST_PRACTICE = "best-practice"

    @property
    def tags(self) -> tuple[str, ...]:
        return _TAGS[self]

    @classmethod
    def parse(cls, value: str) -> Standard:
        """Accept a standard name or a bare conformance level (A, AA, AAA)."""
        key = value.strip()
        alias = _LEVEL_ALIASES.get(key.upper())
        if alias is not None:
            return alias
        try:
            return cls(key.lower())
        except ValueError:
            raise ValueError(
                f"Invalid standard: {value}. Valid options: {', '.join(choices())}"
            ) from None


_TAGS: dict[Standard, tuple[str, ...]] = {
    Standard.WCAG2A: ("wcag2a",),
    Standard.WCAG2AA: ("wcag2a", "wcag2aa"),
    Standard.WCAG2AAA: ("wcag2a", "wcag2aa", "wcag2aaa"),
    Standard.WCAG21A: ("wcag2a", "wcag21a"),
    Standard.WCAG21AA: ("wcag2a", "wcag2aa", "wcag21a", "wcag21aa"),
    Standard.WCAG21AAA: (
        "wcag2a",
        "wcag2aa",
        "wcag2aaa",
        "wcag21a",
        "wcag21aa",
        "wcag21aaa",
    ),
    Standard.WCAG22AA: ("wcag2a", "wcag2aa", "wcag21a", "wcag21aa", "wcag22aa"),
    Standard.SECTION508: ("section508",),
    Standard.BEST_PRACTICE: ("best-practice",),
}

# axe-core has no wcag22a/wcag22aaa tags; the 2.1 sets are the closest match
_LEVEL_ALIASES: dict[str, Standard] = {
    "A": Standard.WCAG21A,
    "AA": Standard.WCAG22AA,
    "AAA": Standard.WCAG21AAA,
}

DEFAULT_STANDARD = Standard.WCAG22AA


def choices() -> list[str]:
    return [s.value for s in Standard]
