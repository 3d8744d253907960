import os

# settings require a secret, set it before anything imports snbt.config
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt-signing-32b")

import pytest

from snbt.core.errors import TransientStoreError
from snbt.core.questions import canonical_from_document, question_from_document
from snbt.core.subtests import OPTIONS, SUBTEST_SEQUENCE
from snbt.core.timer import InMemoryAnchorStore, TimerState


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.t = float(start)

    def now(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += float(seconds)


class FakeStore:
    """In-memory SimulationStore; flip fail_* to simulate an unavailable backend."""

    def __init__(self):
        self.questions = {}
        self.answer_keys = {}
        self.records = {}
        self.results = {}
        self.fail_reads = False
        self.fail_writes = False
        self.fail_result_writes = False
        self.write_gate = None  # asyncio.Event, holds answer writes until set
        self.record_writes = 0
        self.result_writes = 0

    def add_question(self, simulation_id, subtest, index, correct="A", **doc):
        self.questions[(simulation_id, subtest.value, index)] = {
            "simulation_id": simulation_id,
            "question": doc.pop("question", f"{subtest.value} question {index}"),
            "options": doc.pop("options", {o: f"option {o}" for o in OPTIONS}),
            **doc,
        }
        if correct is not None:
            self.answer_keys[(simulation_id, subtest.value, index)] = {
                "simulation_id": simulation_id,
                "correct_option": correct,
            }

    def fill(self, simulation_id, correct="A"):
        for subtest in SUBTEST_SEQUENCE:
            for i in range(1, subtest.question_count + 1):
                self.add_question(simulation_id, subtest, i, correct=correct)

    def _read(self):
        if self.fail_reads:
            raise TransientStoreError("store unavailable")

    async def fetch_question(self, simulation_id, subtest, index):
        self._read()
        doc = self.questions.get((simulation_id, subtest.value, index))
        if doc is None:
            return None
        return question_from_document(doc, subtest, index)

    async def fetch_canonical_answer(self, simulation_id, subtest, index):
        self._read()
        return canonical_from_document(self.answer_keys.get((simulation_id, subtest.value, index)), subtest, index)

    async def write_answer_record(self, record):
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_writes:
            raise TransientStoreError("write failed")
        self.record_writes += 1
        self.records[(record.user_id, record.simulation_id, record.subtest, record.question_index)] = record

    async def fetch_answer_records(self, user_id, simulation_id, subtest):
        self._read()
        return sorted(
            (
                r for (u, s, st, _), r in self.records.items()
                if u == user_id and s == simulation_id and st == subtest
            ),
            key=lambda r: r.question_index,
        )

    async def write_simulation_result(self, user_id, result):
        if self.fail_writes or self.fail_result_writes:
            raise TransientStoreError("write failed")
        self.result_writes += 1
        self.results[(user_id, result.simulation_id)] = result

    async def fetch_simulation_result(self, user_id, simulation_id):
        self._read()
        return self.results.get((user_id, simulation_id))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def anchors():
    return InMemoryAnchorStore()


@pytest.fixture
def timer(anchors, clock):
    return TimerState(store=anchors, clock=clock)
