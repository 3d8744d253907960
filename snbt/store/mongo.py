import logging
from typing import List, Optional

from pymongo.errors import PyMongoError

from snbt.core.errors import TransientStoreError
from snbt.core.models import AnswerRecord, CanonicalAnswer, Question, SimulationResult
from snbt.core.questions import canonical_from_document, question_from_document
from snbt.core.subtests import Subtest

logger = logging.getLogger(__name__)


class MongoSimulationStore:
    """SimulationStore backed by MongoDB collections (see db/database.py for indexes)."""

    def __init__(self, db):
        self.db = db

    async def fetch_question(self, simulation_id: Optional[int], subtest: Subtest, index: int) -> Optional[Question]:
        try:
            doc = await self.db.questions.find_one(
                {"simulation_id": simulation_id, "subtest": subtest.value, "index": index},
                projection={"_id": 0}
            )
        except PyMongoError as e:
            logger.error(f"Error getting question {subtest.value}/{index}: {e}")
            raise TransientStoreError("Failed to load question") from e
        if doc is None:
            logger.info(f"No question found for simulation {simulation_id}, {subtest.value} #{index}")
            return None
        return question_from_document(doc, subtest, index)

    async def fetch_canonical_answer(self, simulation_id: Optional[int], subtest: Subtest, index: int) -> Optional[CanonicalAnswer]:
        try:
            doc = await self.db.answer_keys.find_one(
                {"simulation_id": simulation_id, "subtest": subtest.value, "index": index},
                projection={"_id": 0}
            )
        except PyMongoError as e:
            logger.error(f"Error getting answer key {subtest.value}/{index}: {e}")
            raise TransientStoreError("Failed to load answer key") from e
        return canonical_from_document(doc, subtest, index)

    async def write_answer_record(self, record: AnswerRecord) -> None:
        doc = record.model_dump(mode="python")
        doc["subtest"] = record.subtest.value
        try:
            # key fields in the filter, whole record replaced: last write wins
            await self.db.answer_records.replace_one(
                {
                    "user_id": record.user_id,
                    "simulation_id": record.simulation_id,
                    "subtest": record.subtest.value,
                    "question_index": record.question_index,
                },
                doc,
                upsert=True
            )
        except PyMongoError as e:
            logger.error(f"Error saving answer for {record.user_id}, {record.subtest.value} #{record.question_index}: {e}")
            raise TransientStoreError("Failed to save answer") from e

    async def fetch_answer_records(self, user_id: str, simulation_id: Optional[int], subtest: Subtest) -> List[AnswerRecord]:
        try:
            docs = await self.db.answer_records.find(
                {"user_id": user_id, "simulation_id": simulation_id, "subtest": subtest.value},
                projection={"_id": 0}
            ).sort("question_index", 1).to_list(None)
        except PyMongoError as e:
            logger.error(f"Error getting answers of {user_id} for {subtest.value}: {e}")
            raise TransientStoreError("Failed to load answers") from e
        return [AnswerRecord(**d) for d in docs]

    async def write_simulation_result(self, user_id: str, result: SimulationResult) -> None:
        doc = result.model_dump(mode="json")
        doc["user_id"] = user_id
        doc["completed_at"] = result.completed_at
        try:
            await self.db.simulation_results.replace_one(
                {"user_id": user_id, "simulation_id": result.simulation_id},
                doc,
                upsert=True
            )
        except PyMongoError as e:
            logger.error(f"Error saving result of simulation {result.simulation_id} for {user_id}: {e}")
            raise TransientStoreError("Failed to save simulation result") from e

    async def fetch_simulation_result(self, user_id: str, simulation_id: int) -> Optional[SimulationResult]:
        try:
            doc = await self.db.simulation_results.find_one(
                {"user_id": user_id, "simulation_id": simulation_id},
                projection={"_id": 0, "user_id": 0}
            )
        except PyMongoError as e:
            logger.error(f"Error getting result of simulation {simulation_id} for {user_id}: {e}")
            raise TransientStoreError("Failed to load simulation result") from e
        if doc is None:
            return None
        return SimulationResult(**doc)
