from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Collection, Iterable, List, Mapping, Optional

from snbt.core.models import AnswerRecord, SimulationResult
from snbt.core.subtests import Subtest

LOW_TIME_THRESHOLD_S = 300


class QuestionStatus(str, Enum):
    UNANSWERED = "unanswered"
    ANSWERED = "answered"
    CORRECT = "correct"
    INCORRECT = "incorrect"


class SimulationStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class SubtestProgress:
    subtest: Subtest
    answered: int
    total: int
    statuses: list[QuestionStatus]

    @property
    def unanswered(self) -> int:
        return self.total - self.answered

    @property
    def percent(self) -> int:
        return round(self.answered / self.total * 100) if self.total else 0


@dataclass(frozen=True, slots=True)
class SimulationSummary:
    simulation_id: int
    status: SimulationStatus
    final_score: Optional[int]


def subtest_progress(
    records: Iterable[AnswerRecord], subtest: Subtest, *, reveal_correctness: bool = False
) -> SubtestProgress:
    """Question grid for one subtest.

    Simulation grids are anonymous (answered/unanswered); exercise grids show
    whether each answer was correct.
    """
    by_index = {r.question_index: r for r in records if 1 <= r.question_index <= subtest.question_count}
    statuses = []
    for i in range(1, subtest.question_count + 1):
        rec = by_index.get(i)
        if rec is None:
            statuses.append(QuestionStatus.UNANSWERED)
        elif not reveal_correctness:
            statuses.append(QuestionStatus.ANSWERED)
        else:
            statuses.append(QuestionStatus.CORRECT if rec.is_correct else QuestionStatus.INCORRECT)
    return SubtestProgress(subtest=subtest, answered=len(by_index), total=subtest.question_count, statuses=statuses)


def simulation_summary(
    simulation_id: int,
    *,
    result: Optional[SimulationResult],
    has_anchor: bool,
    has_answers: bool,
) -> SimulationSummary:
    if result is not None:
        return SimulationSummary(simulation_id, SimulationStatus.COMPLETED, result.final_score)
    if has_anchor or has_answers:
        return SimulationSummary(simulation_id, SimulationStatus.IN_PROGRESS, None)
    return SimulationSummary(simulation_id, SimulationStatus.NOT_STARTED, None)


def format_time(seconds: float) -> str:
    if seconds != seconds or seconds < 0:  # NaN or negative
        return "0:00"
    whole = int(seconds)
    return f"{whole // 60}:{whole % 60:02d}"


def is_low_time(seconds: float) -> bool:
    return seconds <= LOW_TIME_THRESHOLD_S


def simulation_overview(
    count: int,
    *,
    results: Mapping[int, SimulationResult],
    anchored: Collection[int] = (),
    answered: Collection[int] = (),
) -> List[SimulationSummary]:
    """Status of simulations 1..count for the list page.

    ``anchored`` holds the ids with a running timer, ``answered`` the ids with
    at least one saved answer.
    """
    return [
        simulation_summary(
            sim_id,
            result=results.get(sim_id),
            has_anchor=sim_id in anchored,
            has_answers=sim_id in answered,
        )
        for sim_id in range(1, count + 1)
    ]
