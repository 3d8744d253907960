import logging
import math
from datetime import datetime, timezone
from typing import Iterable, List

from snbt.core.clock import Clock, SystemClock
from snbt.core.errors import AggregationFailure, TransientStoreError
from snbt.core.models import AnswerRecord, SimulationResult, SubtestResult
from snbt.core.subtests import SUBTEST_SEQUENCE, Subtest
from snbt.store.base import SimulationStore

logger = logging.getLogger(__name__)

# fixed weight, each subtest is scored on a 0-500 scale
SCORE_SCALE = 50 * 10


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def subtest_score(correct_count: int, total_questions: int) -> int:
    return round_half_up(correct_count / total_questions * SCORE_SCALE)


def final_score(scores: List[int]) -> int:
    if not scores:
        return 0
    return round_half_up(sum(scores) / len(scores))


def score_subtest(subtest: Subtest, records: Iterable[AnswerRecord]) -> SubtestResult:
    # one slot per question; ignore anything outside the subtest's range
    correct = {
        r.question_index
        for r in records
        if r.is_correct and 1 <= r.question_index <= subtest.question_count
    }
    return SubtestResult(
        subtest=subtest,
        correct_count=len(correct),
        total_questions=subtest.question_count,
        score=subtest_score(len(correct), subtest.question_count),
    )


class ResultAggregator:
    def __init__(self, store: SimulationStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or SystemClock()

    async def aggregate(self, user_id: str, simulation_id: int) -> SimulationResult:
        """Score all four subtests and persist the result, replacing any earlier one.

        Raises AggregationFailure if any read or the final write fails; in that
        case nothing is written.
        """
        subtest_results = []
        try:
            for subtest in SUBTEST_SEQUENCE:
                records = await self.store.fetch_answer_records(user_id, simulation_id, subtest)
                subtest_results.append(score_subtest(subtest, records))

            result = SimulationResult(
                simulation_id=simulation_id,
                subtest_results=subtest_results,
                final_score=final_score([r.score for r in subtest_results]),
                completed_at=datetime.fromtimestamp(self.clock.now(), tz=timezone.utc),
            )
            await self.store.write_simulation_result(user_id, result)
        except TransientStoreError as e:
            logger.error(f"Error calculating simulation {simulation_id} result for {user_id}: {e}")
            raise AggregationFailure(f"Simulation {simulation_id} result could not be calculated") from e

        logger.info(f"Simulation {simulation_id} result for {user_id}: {result.final_score}")
        return result
