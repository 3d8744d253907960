from pydantic import BaseModel
from typing import List
from datetime import datetime

from snbt.core.models import SimulationResult
from snbt.core.subtests import Subtest


class SubtestScore(BaseModel):
    subtest: Subtest
    name: str
    correct: int
    total: int
    score: int


class UserResult(BaseModel):
    simulation_id: int
    final_score: int
    subtest_scores: List[SubtestScore]
    completed_at: datetime

    @classmethod
    def from_result(cls, result: SimulationResult) -> "UserResult":
        return cls(
            simulation_id=result.simulation_id,
            final_score=result.final_score,
            subtest_scores=[
                SubtestScore(
                    subtest=r.subtest,
                    name=r.subtest.display_name,
                    correct=r.correct_count,
                    total=r.total_questions,
                    score=r.score,
                )
                for r in result.subtest_results
            ],
            completed_at=result.completed_at,
        )


class RecalculateResponse(BaseModel):
    status: str
    task_id: str
