from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Subtest(str, Enum):
    TPS = "tps"
    INDONESIAN_LITERACY = "indo"
    ENGLISH_LITERACY = "eng"
    MATH_REASONING = "mat"

    @property
    def spec(self) -> "SubtestSpec":
        return SUBTEST_SPECS[self]

    @property
    def question_count(self) -> int:
        return self.spec.question_count

    @property
    def time_limit_s(self) -> int:
        return self.spec.time_limit_s

    @property
    def display_name(self) -> str:
        return self.spec.display_name

    @classmethod
    def from_category(cls, slug: str) -> "Subtest":
        """Resolve an exercise category slug (e.g. ``penalaran-matematika``)."""
        for subtest, spec in SUBTEST_SPECS.items():
            if spec.category == slug:
                return subtest
        raise ValueError(f"Invalid category: {slug}")


@dataclass(frozen=True, slots=True)
class SubtestSpec:
    question_count: int
    time_limit_s: int
    display_name: str
    category: str


SUBTEST_SPECS: dict[Subtest, SubtestSpec] = {
    Subtest.TPS: SubtestSpec(90, 5400, "Tes Potensi Skolastik", "tes-potensi-skolastik"),
    Subtest.INDONESIAN_LITERACY: SubtestSpec(25, 2250, "Literasi Bahasa Indonesia", "literasi-bahasa-indonesia"),
    Subtest.ENGLISH_LITERACY: SubtestSpec(20, 1800, "Literasi Bahasa Inggris", "literasi-bahasa-inggris"),
    Subtest.MATH_REASONING: SubtestSpec(20, 2250, "Penalaran Matematika", "penalaran-matematika"),
}

# simulation order, TPS -> Indo -> Eng -> Mat
SUBTEST_SEQUENCE: tuple[Subtest, ...] = (
    Subtest.TPS,
    Subtest.INDONESIAN_LITERACY,
    Subtest.ENGLISH_LITERACY,
    Subtest.MATH_REASONING,
)

OPTIONS: tuple[str, ...] = ("A", "B", "C", "D", "E")


def next_subtest(subtest: Subtest) -> Subtest | None:
    """Successor in the simulation sequence, None for the terminal subtest."""
    idx = SUBTEST_SEQUENCE.index(subtest)
    if idx + 1 < len(SUBTEST_SEQUENCE):
        return SUBTEST_SEQUENCE[idx + 1]
    return None
