from datetime import datetime, timezone

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from snbt.core.errors import MalformedQuestionData, TransientStoreError
from snbt.core.models import AnswerRecord, SimulationResult, SubtestResult
from snbt.core.subtests import Subtest
from snbt.store.mongo import MongoSimulationStore

WHEN = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs
        self.sorted_by = None

    def sort(self, field, direction):
        self.sorted_by = (field, direction)
        self.docs = sorted(self.docs, key=lambda d: d[field], reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return list(self.docs)


class FakeCollection:
    """Minimal async collection, just the calls the store makes."""

    def __init__(self, docs=None, error=None):
        self.docs = docs or []
        self.error = error
        self.replaced = []

    async def find_one(self, filter, projection=None):
        if self.error:
            raise self.error
        for d in self.docs:
            if all(d.get(k) == v for k, v in filter.items()):
                return {k: v for k, v in d.items() if k not in (projection or {})}
        return None

    def find(self, filter, projection=None):
        if self.error:
            raise self.error
        return FakeCursor([d for d in self.docs if all(d.get(k) == v for k, v in filter.items())])

    async def replace_one(self, filter, doc, upsert=False):
        if self.error:
            raise self.error
        self.replaced.append((filter, doc, upsert))


class FakeDB:
    def __init__(self, **collections):
        self.questions = collections.get("questions", FakeCollection())
        self.answer_keys = collections.get("answer_keys", FakeCollection())
        self.answer_records = collections.get("answer_records", FakeCollection())
        self.simulation_results = collections.get("simulation_results", FakeCollection())


def record(index=1):
    return AnswerRecord(
        user_id="u1", simulation_id=1, subtest=Subtest.TPS, question_index=index,
        selected_option="A", is_correct=True, recorded_at=WHEN,
    )


async def test_fetch_question_validates_document():
    db = FakeDB(questions=FakeCollection([
        {"simulation_id": 1, "subtest": "tps", "index": 1, "question": "q",
         "options": {"A": "a", "B": "b", "C": "c", "D": "d", "E": "e"}},
        {"simulation_id": 1, "subtest": "tps", "index": 2, "question": "q", "options": ["a", "b"]},
    ]))
    store = MongoSimulationStore(db)

    q = await store.fetch_question(1, Subtest.TPS, 1)
    assert q.options["E"] == "e"
    assert await store.fetch_question(1, Subtest.TPS, 3) is None
    with pytest.raises(MalformedQuestionData):
        await store.fetch_question(1, Subtest.TPS, 2)


async def test_fetch_canonical_answer():
    db = FakeDB(answer_keys=FakeCollection([
        {"simulation_id": None, "subtest": "mat", "index": 1, "correct_option": "D"},
        {"simulation_id": None, "subtest": "mat", "index": 2, "correct_option": "X"},
    ]))
    store = MongoSimulationStore(db)
    assert (await store.fetch_canonical_answer(None, Subtest.MATH_REASONING, 1)).correct_option == "D"
    assert await store.fetch_canonical_answer(None, Subtest.MATH_REASONING, 2) is None


async def test_write_answer_record_upserts_by_slot():
    db = FakeDB()
    await MongoSimulationStore(db).write_answer_record(record(4))
    filter, doc, upsert = db.answer_records.replaced[0]
    assert filter == {"user_id": "u1", "simulation_id": 1, "subtest": "tps", "question_index": 4}
    assert doc["subtest"] == "tps"
    assert upsert


async def test_fetch_answer_records_sorted():
    docs = [record(i).model_dump() | {"subtest": "tps"} for i in (3, 1, 2)]
    store = MongoSimulationStore(FakeDB(answer_records=FakeCollection(docs)))
    records = await store.fetch_answer_records("u1", 1, Subtest.TPS)
    assert [r.question_index for r in records] == [1, 2, 3]


async def test_simulation_result_round_trip_document():
    db = FakeDB()
    result = SimulationResult(
        simulation_id=1,
        subtest_results=[SubtestResult(subtest=Subtest.TPS, correct_count=45, total_questions=90, score=250)],
        final_score=250,
        completed_at=WHEN,
    )
    await MongoSimulationStore(db).write_simulation_result("u1", result)
    filter, doc, upsert = db.simulation_results.replaced[0]
    assert filter == {"user_id": "u1", "simulation_id": 1}
    assert doc["user_id"] == "u1"
    assert doc["completed_at"] == WHEN
    assert doc["subtest_results"][0]["subtest"] == "tps"


async def test_driver_errors_become_transient():
    err = ServerSelectionTimeoutError("no servers")
    db = FakeDB(
        questions=FakeCollection(error=err),
        answer_records=FakeCollection(error=err),
        simulation_results=FakeCollection(error=err),
    )
    store = MongoSimulationStore(db)
    with pytest.raises(TransientStoreError):
        await store.fetch_question(1, Subtest.TPS, 1)
    with pytest.raises(TransientStoreError):
        await store.write_answer_record(record())
    with pytest.raises(TransientStoreError):
        await store.fetch_answer_records("u1", 1, Subtest.TPS)
    with pytest.raises(TransientStoreError):
        await store.fetch_simulation_result("u1", 1)
