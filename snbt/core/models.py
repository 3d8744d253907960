from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from snbt.core.subtests import Subtest

Option = Literal["A", "B", "C", "D", "E"]


class Question(BaseModel):
    simulation_id: Optional[int] = None  # None for the exercise bank
    subtest: Subtest
    index: int
    question: str
    options: Dict[Option, str]


class CanonicalAnswer(BaseModel):
    simulation_id: Optional[int] = None
    subtest: Subtest
    index: int
    correct_option: Option


class AnswerKey(BaseModel):
    """Identifies one question slot of one user."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    simulation_id: Optional[int]
    subtest: Subtest
    question_index: int


class AnswerRecord(BaseModel):
    user_id: str
    simulation_id: Optional[int] = None
    subtest: Subtest
    question_index: int
    selected_option: Option
    is_correct: bool
    recorded_at: datetime

    @property
    def key(self) -> AnswerKey:
        return AnswerKey(
            user_id=self.user_id,
            simulation_id=self.simulation_id,
            subtest=self.subtest,
            question_index=self.question_index,
        )


class SubtestResult(BaseModel):
    subtest: Subtest
    correct_count: int
    total_questions: int
    score: int


class SimulationResult(BaseModel):
    simulation_id: int
    subtest_results: List[SubtestResult]
    final_score: int
    completed_at: datetime
