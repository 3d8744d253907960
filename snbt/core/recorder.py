import logging
from datetime import datetime, timezone

from snbt.core.clock import Clock, SystemClock
from snbt.core.errors import TransientStoreError
from snbt.core.models import AnswerKey, AnswerRecord
from snbt.core.subtests import OPTIONS
from snbt.store.base import SimulationStore

logger = logging.getLogger(__name__)


class AnswerRecorder:
    """Resolves correctness of a selection and persists it, one record per slot."""

    def __init__(self, store: SimulationStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or SystemClock()

    async def record(self, key: AnswerKey, selected_option: str) -> AnswerRecord:
        if selected_option not in OPTIONS:
            raise ValueError(f"Invalid option: {selected_option!r}")

        # always re-read the answer key, never trust an earlier result
        canonical = await self.store.fetch_canonical_answer(key.simulation_id, key.subtest, key.question_index)
        is_correct = canonical is not None and selected_option == canonical.correct_option

        record = AnswerRecord(
            user_id=key.user_id,
            simulation_id=key.simulation_id,
            subtest=key.subtest,
            question_index=key.question_index,
            selected_option=selected_option,
            is_correct=is_correct,
            recorded_at=datetime.fromtimestamp(self.clock.now(), tz=timezone.utc),
        )
        try:
            await self.store.write_answer_record(record)
        except TransientStoreError as e:
            logger.error(f"Error saving answer {key.subtest.value} #{key.question_index} for {key.user_id}: {e}")
            raise
        logger.debug(
            f"Saved answer {selected_option} for {key.subtest.value} #{key.question_index}, correct: {is_correct}"
        )
        return record
