from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from snbt.core.errors import IllegalTransition
from snbt.core.subtests import SUBTEST_SEQUENCE, Subtest, next_subtest


@dataclass(frozen=True, slots=True)
class InSubtest:
    subtest: Subtest
    question_index: int


@dataclass(frozen=True, slots=True)
class SubtestExpiring:
    """Time ran out; the subtest is being wound up and accepts no navigation."""

    subtest: Subtest
    question_index: int


@dataclass(frozen=True, slots=True)
class Terminal:
    pass


TERMINAL = Terminal()

State = Union[InSubtest, SubtestExpiring, Terminal]


class Event(str, Enum):
    ADVANCE = "advance"
    RETREAT = "retreat"
    GO_TO = "go_to"
    SIGNAL_EXPIRY = "signal_expiry"
    EXPIRE = "expire"


@dataclass(frozen=True, slots=True)
class Transition:
    event: Event
    before: State
    after: State

    @property
    def changed(self) -> bool:
        return self.before != self.after

    @property
    def entered_terminal(self) -> bool:
        return self.changed and isinstance(self.after, Terminal)

    @property
    def left_subtest(self) -> Subtest | None:
        """Subtest that was finished by this transition, if any."""
        if not self.changed or isinstance(self.before, Terminal):
            return None
        if isinstance(self.after, Terminal) or self.after.subtest != self.before.subtest:
            return self.before.subtest
        return None

    @property
    def entered_subtest(self) -> Subtest | None:
        if self.left_subtest is None or isinstance(self.after, Terminal):
            return None
        return self.after.subtest


class Sequencer:
    """Explicit state machine over the fixed subtest sequence.

    States: InSubtest(subtest, index) -> SubtestExpiring -> ... -> Terminal.
    Every event returns a Transition; a transition with ``before == after`` is
    a no-op. Events may carry the state they were issued against
    (``expected``) so that a stale event loses a race instead of acting on a
    state it never saw.
    """

    def __init__(self, state: State | None = None) -> None:
        self._state: State = state if state is not None else InSubtest(SUBTEST_SEQUENCE[0], 1)
        if isinstance(self._state, (InSubtest, SubtestExpiring)):
            _check_index(self._state.subtest, self._state.question_index)

    @property
    def state(self) -> State:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return isinstance(self._state, Terminal)

    def advance_question(self, expected: State | None = None) -> Transition:
        state = self._state
        if not isinstance(state, InSubtest) or _stale(state, expected):
            # expiry already signalled, terminal, or somebody else moved first
            return self._noop(Event.ADVANCE)
        if state.question_index < state.subtest.question_count:
            return self._move(Event.ADVANCE, InSubtest(state.subtest, state.question_index + 1))
        return self._move(Event.ADVANCE, _successor(state.subtest))

    def signal_expiry(self, subtest: Subtest) -> Transition:
        state = self._state
        if not isinstance(state, InSubtest) or state.subtest != subtest:
            return self._noop(Event.SIGNAL_EXPIRY)
        return self._move(Event.SIGNAL_EXPIRY, SubtestExpiring(state.subtest, state.question_index))

    def expire(self, subtest: Subtest) -> Transition:
        state = self._state
        if not isinstance(state, (InSubtest, SubtestExpiring)) or state.subtest != subtest:
            return self._noop(Event.EXPIRE)
        return self._move(Event.EXPIRE, _successor(state.subtest))

    def retreat_question(self, expected: State | None = None) -> Transition:
        state = self._state
        if _stale(state, expected):
            return self._noop(Event.RETREAT)
        if isinstance(state, SubtestExpiring):
            raise IllegalTransition("Time is up, cannot move back")
        if not isinstance(state, InSubtest):
            raise IllegalTransition("Simulation already finished")
        if state.question_index <= 1:
            raise IllegalTransition("Already at the first question")
        return self._move(Event.RETREAT, InSubtest(state.subtest, state.question_index - 1))

    def go_to_question(self, index: int, expected: State | None = None) -> Transition:
        state = self._state
        if _stale(state, expected):
            return self._noop(Event.GO_TO)
        if isinstance(state, SubtestExpiring):
            raise IllegalTransition("Time is up, cannot change question")
        if not isinstance(state, InSubtest):
            raise IllegalTransition("Simulation already finished")
        _check_index(state.subtest, index)
        return self._move(Event.GO_TO, InSubtest(state.subtest, index))

    def _move(self, event: Event, after: State) -> Transition:
        before = self._state
        self._state = after
        return Transition(event=event, before=before, after=after)

    def _noop(self, event: Event) -> Transition:
        return Transition(event=event, before=self._state, after=self._state)


def _stale(state: State, expected: State | None) -> bool:
    return expected is not None and expected != state


def _successor(subtest: Subtest) -> State:
    nxt = next_subtest(subtest)
    if nxt is None:
        return TERMINAL
    return InSubtest(nxt, 1)


def _check_index(subtest: Subtest, index: int) -> None:
    if not 1 <= index <= subtest.question_count:
        raise IllegalTransition(
            f"Question {index} is out of range for {subtest.value} (1..{subtest.question_count})"
        )
