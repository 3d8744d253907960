from pydantic import BaseModel
from typing import Dict, Optional, List

from snbt.core.models import Option, Question
from snbt.core.progress import QuestionStatus, SimulationStatus, SubtestProgress, format_time, is_low_time
from snbt.core.sequencer import InSubtest, State, SubtestExpiring
from snbt.core.session import NavigationOutcome, SessionSnapshot
from snbt.core.subtests import Subtest


class SelectionRequest(BaseModel):
    selected_option: Option


class StateOut(BaseModel):
    status: str  # in_subtest, expiring or finished
    subtest: Optional[Subtest] = None
    subtest_name: Optional[str] = None
    question_index: Optional[int] = None
    question_count: Optional[int] = None

    @classmethod
    def from_state(cls, state: State) -> "StateOut":
        if isinstance(state, (InSubtest, SubtestExpiring)):
            return cls(
                status="in_subtest" if isinstance(state, InSubtest) else "expiring",
                subtest=state.subtest,
                subtest_name=state.subtest.display_name,
                question_index=state.question_index,
                question_count=state.subtest.question_count,
            )
        return cls(status="finished")


class QuestionOut(BaseModel):
    index: int
    question: str
    options: Dict[Option, str]

    @classmethod
    def from_question(cls, q: Question) -> "QuestionOut":
        return cls(index=q.index, question=q.question, options=q.options)


class SessionOut(BaseModel):
    simulation_id: int
    state: StateOut
    remaining_seconds: Optional[float] = None
    remaining_display: Optional[str] = None
    low_time: bool = False
    selected_option: Optional[Option] = None
    completed: bool
    last_write_failed: bool = False
    question: Optional[QuestionOut] = None

    @classmethod
    def from_snapshot(cls, snap: SessionSnapshot, question: Optional[Question] = None) -> "SessionOut":
        remaining = snap.remaining_s
        return cls(
            simulation_id=snap.simulation_id,
            state=StateOut.from_state(snap.state),
            remaining_seconds=remaining,
            remaining_display=format_time(remaining) if remaining is not None else None,
            low_time=remaining is not None and is_low_time(remaining),
            selected_option=snap.selected_option,
            completed=snap.completed,
            last_write_failed=snap.last_write_failed,
            question=QuestionOut.from_question(question) if question is not None else None,
        )


class NavigationOut(BaseModel):
    state: StateOut
    moved: bool
    saved: Optional[bool] = None  # None when there was nothing to save
    completed: bool
    final_score: Optional[int] = None

    @classmethod
    def from_outcome(cls, outcome: NavigationOutcome) -> "NavigationOut":
        return cls(
            state=StateOut.from_state(outcome.transition.after),
            moved=outcome.transition.changed,
            saved=outcome.write.ok if outcome.write is not None else None,
            completed=outcome.completed,
            final_score=outcome.result.final_score if outcome.result is not None else None,
        )


class ProgressOut(BaseModel):
    subtest: Subtest
    answered: int
    unanswered: int
    total: int
    percent: int
    statuses: List[QuestionStatus]

    @classmethod
    def from_progress(cls, p: SubtestProgress) -> "ProgressOut":
        return cls(
            subtest=p.subtest,
            answered=p.answered,
            unanswered=p.unanswered,
            total=p.total,
            percent=p.percent,
            statuses=p.statuses,
        )


class SimulationSummaryOut(BaseModel):
    simulation_id: int
    status: SimulationStatus
    final_score: Optional[int] = None


class ExerciseAnswerOut(BaseModel):
    subtest: Subtest
    question_index: int
    selected_option: Option
    is_correct: bool
