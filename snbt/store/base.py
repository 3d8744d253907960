from typing import List, Optional, Protocol

from snbt.core.models import AnswerRecord, CanonicalAnswer, Question, SimulationResult
from snbt.core.subtests import Subtest


class SimulationStore(Protocol):
    """Question/answer/result store consumed by the simulation engine.

    ``simulation_id=None`` addresses the exercise (practice) bank. Implementations
    raise TransientStoreError when the backend is unavailable.
    """

    async def fetch_question(
        self, simulation_id: Optional[int], subtest: Subtest, index: int
    ) -> Optional[Question]: ...

    async def fetch_canonical_answer(
        self, simulation_id: Optional[int], subtest: Subtest, index: int
    ) -> Optional[CanonicalAnswer]: ...

    async def write_answer_record(self, record: AnswerRecord) -> None: ...

    async def fetch_answer_records(
        self, user_id: str, simulation_id: Optional[int], subtest: Subtest
    ) -> List[AnswerRecord]: ...

    async def write_simulation_result(self, user_id: str, result: SimulationResult) -> None: ...

    async def fetch_simulation_result(
        self, user_id: str, simulation_id: int
    ) -> Optional[SimulationResult]: ...
