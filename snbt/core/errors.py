class SimulationError(Exception):
    """Base class for simulation engine errors."""


class TransientStoreError(SimulationError):
    """The question/answer/result store could not be read or written."""


class MalformedQuestionData(SimulationError):
    def __init__(self, subtest: str, index: int, reason: str):
        self.subtest = subtest
        self.index = index
        self.reason = reason
        super().__init__(f"Question {index} of {subtest} is malformed: {reason}")


class QuestionNotFound(SimulationError):
    def __init__(self, subtest: str, index: int):
        self.subtest = subtest
        self.index = index
        super().__init__(f"Question {index} of {subtest} not found")


class AggregationFailure(SimulationError):
    """No result was persisted, caller has to handle a missing result."""


class IllegalTransition(SimulationError):
    pass


class SessionNotFound(SimulationError):
    pass
