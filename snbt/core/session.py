from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from snbt.core.aggregator import ResultAggregator
from snbt.core.clock import Clock
from snbt.core.errors import AggregationFailure, IllegalTransition, SessionNotFound, TransientStoreError
from snbt.core.models import AnswerKey, AnswerRecord, SimulationResult
from snbt.core.recorder import AnswerRecorder
from snbt.core.sequencer import InSubtest, Sequencer, State, SubtestExpiring, Terminal, Transition
from snbt.core.subtests import OPTIONS, SUBTEST_SEQUENCE, Subtest
from snbt.core.timer import CountdownTicker, InMemoryAnchorStore, TimerKey, TimerState
from snbt.store.base import SimulationStore

logger = logging.getLogger(__name__)

AggregationFailureHook = Callable[[str, int], None]


@dataclass(frozen=True, slots=True)
class WriteResult:
    """Outcome of persisting a local selection. Failures leave the selection in place."""

    key: AnswerKey
    record: AnswerRecord | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class NavigationOutcome:
    transition: Transition
    write: WriteResult | None = None
    completed: bool = False
    result: SimulationResult | None = None


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the question page (pure data)."""

    simulation_id: int
    state: State
    remaining_s: float | None
    selected_option: str | None
    completed: bool
    result: SimulationResult | None
    last_write_failed: bool


class SimulationSession:
    """One user's active simulation view.

    Navigation (HTTP requests) and the tick loop run on the same event loop and
    are serialised through one lock. Each event remembers the state it was
    issued against, so whichever of expiry and a manual advance comes second is
    a no-op.
    """

    def __init__(
        self,
        *,
        user_id: str,
        simulation_id: int,
        store: SimulationStore,
        timer: TimerState,
        clock: Clock,
        sequencer: Sequencer | None = None,
        tick_interval_s: float = 1.0,
        on_aggregation_failure: AggregationFailureHook | None = None,
    ) -> None:
        self._user_id = user_id
        self._simulation_id = simulation_id
        self._store = store
        self._timer = timer
        self._sequencer = sequencer or Sequencer()
        self._recorder = AnswerRecorder(store, clock)
        self._aggregator = ResultAggregator(store, clock)
        self._tick_interval_s = tick_interval_s
        self._on_aggregation_failure = on_aggregation_failure

        self._lock = asyncio.Lock()
        self._ticker: CountdownTicker | None = None
        self._selections: dict[tuple[Subtest, int], str] = {}
        self._aggregated = False
        self._result: SimulationResult | None = None
        self._last_write: WriteResult | None = None

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def simulation_id(self) -> int:
        return self._simulation_id

    @property
    def state(self) -> State:
        return self._sequencer.state

    @property
    def is_terminal(self) -> bool:
        return self._sequencer.is_terminal

    @property
    def ticker(self) -> CountdownTicker | None:
        return self._ticker

    @property
    def result(self) -> SimulationResult | None:
        return self._result

    def timer_key(self, subtest: Subtest) -> TimerKey:
        return TimerKey(self._user_id, self._simulation_id, subtest)

    def remaining_s(self) -> float | None:
        state = self.state
        if isinstance(state, Terminal):
            return None
        if isinstance(state, SubtestExpiring):
            return 0.0
        return self._timer.remaining(self.timer_key(state.subtest), state.subtest.time_limit_s)

    def selection(self, subtest: Subtest, index: int) -> str | None:
        return self._selections.get((subtest, index))

    async def open(self) -> None:
        """Enter (or re-enter) the current question view.

        Starts the anchor on first entry; an anchor that ran out while the user
        was away expires the subtest right away.
        """
        state = self.state
        if isinstance(state, Terminal):
            return
        await self._load_selections(state.subtest, strict=True)
        self._timer.get_or_start_anchor(self.timer_key(state.subtest))
        if await self.check_expiry() is not None:
            return
        self._start_ticker(state.subtest)

    def time_up(self) -> bool:
        """The current subtest has no time left but has not been expired yet."""
        state = self.state
        return isinstance(state, InSubtest) and self.remaining_s() <= 0.0

    async def check_expiry(self) -> NavigationOutcome | None:
        # nothing ticks while the view is left, so every entry point looks at the clock itself
        if not self.time_up():
            return None
        subtest = self.state.subtest
        logger.info(f"Time already up for {self.timer_key(subtest).storage_key}")
        return await self.handle_expiry(subtest)

    def select(self, option: str) -> None:
        if option not in OPTIONS:
            raise ValueError(f"Invalid option: {option!r}")
        state = self.state
        if not isinstance(state, InSubtest) or self.time_up():
            raise IllegalTransition("Time is up, answers are locked")
        self._selections[(state.subtest, state.question_index)] = option

    async def next(self) -> NavigationOutcome:
        overdue = await self.check_expiry()
        if overdue is not None:
            return overdue
        expected = self.state
        async with self._lock:
            write = await self._persist_selection(expected)
            transition = self._sequencer.advance_question(expected=expected)
            return await self._after(transition, write)

    async def previous(self) -> NavigationOutcome:
        overdue = await self.check_expiry()
        if overdue is not None:
            return overdue
        expected = self.state
        async with self._lock:
            write = await self._persist_selection(expected)
            transition = self._sequencer.retreat_question(expected=expected)
            return await self._after(transition, write)

    async def go_to(self, index: int) -> NavigationOutcome:
        overdue = await self.check_expiry()
        if overdue is not None:
            return overdue
        expected = self.state
        async with self._lock:
            write = await self._persist_selection(expected)
            transition = self._sequencer.go_to_question(index, expected=expected)
            return await self._after(transition, write)

    async def leave(self) -> WriteResult | None:
        """Leave the question view: save, stop ticking, keep the anchor running."""
        overdue = await self.check_expiry()
        async with self._lock:
            if overdue is not None:
                write = overdue.write
            else:
                write = await self._persist_selection(self.state)
            self._stop_ticker()
            return write

    async def handle_expiry(self, subtest: Subtest) -> NavigationOutcome:
        # takes effect immediately so a queued manual advance loses
        self._sequencer.signal_expiry(subtest)
        async with self._lock:
            state = self.state
            write = None
            if isinstance(state, (InSubtest, SubtestExpiring)) and state.subtest == subtest:
                write = await self._persist_selection(state)
            transition = self._sequencer.expire(subtest)
            return await self._after(transition, write)

    def close(self) -> None:
        self._stop_ticker()

    def snapshot(self) -> SessionSnapshot:
        state = self.state
        selected = None
        if isinstance(state, (InSubtest, SubtestExpiring)):
            selected = self.selection(state.subtest, state.question_index)
        return SessionSnapshot(
            simulation_id=self._simulation_id,
            state=state,
            remaining_s=self.remaining_s(),
            selected_option=selected,
            completed=self.is_terminal,
            result=self._result,
            last_write_failed=self._last_write is not None and not self._last_write.ok,
        )

    async def _after(self, transition: Transition, write: WriteResult | None) -> NavigationOutcome:
        if transition.left_subtest is not None:
            self._stop_ticker()
            self._timer.clear(self.timer_key(transition.left_subtest))
        if transition.entered_subtest is not None:
            await self._enter_subtest(transition.entered_subtest)
        if transition.entered_terminal:
            await self._complete()
        return NavigationOutcome(
            transition=transition,
            write=write,
            completed=self.is_terminal,
            result=self._result,
        )

    async def _enter_subtest(self, subtest: Subtest) -> None:
        logger.info(f"{self._user_id} moves on to {subtest.value} in simulation {self._simulation_id}")
        await self._load_selections(subtest, strict=False)
        self._timer.get_or_start_anchor(self.timer_key(subtest))
        self._start_ticker(subtest)

    async def _complete(self) -> None:
        if self._aggregated:
            return
        self._aggregated = True
        self._stop_ticker()
        try:
            self._result = await self._aggregator.aggregate(self._user_id, self._simulation_id)
        except AggregationFailure as e:
            logger.error(f"Result of simulation {self._simulation_id} for {self._user_id} not available: {e}")
            if self._on_aggregation_failure is not None:
                self._on_aggregation_failure(self._user_id, self._simulation_id)

    async def _persist_selection(self, state: State) -> WriteResult | None:
        if isinstance(state, Terminal):
            return None
        option = self.selection(state.subtest, state.question_index)
        if option is None:
            return None
        key = AnswerKey(
            user_id=self._user_id,
            simulation_id=self._simulation_id,
            subtest=state.subtest,
            question_index=state.question_index,
        )
        try:
            record = await self._recorder.record(key, option)
            write = WriteResult(key=key, record=record)
        except TransientStoreError as e:
            # optimistic: the local selection stays, a later navigation retries
            write = WriteResult(key=key, error=e)
        self._last_write = write
        return write

    async def _load_selections(self, subtest: Subtest, *, strict: bool) -> None:
        try:
            records = await self._store.fetch_answer_records(self._user_id, self._simulation_id, subtest)
        except TransientStoreError as e:
            if strict:
                raise
            logger.warning(f"Could not load earlier answers for {subtest.value}: {e}")
            return
        for r in records:
            # unsaved local choices win over what the store has
            self._selections.setdefault((subtest, r.question_index), r.selected_option)

    def _start_ticker(self, subtest: Subtest) -> None:
        self._stop_ticker()
        self._ticker = CountdownTicker(
            timer=self._timer,
            key=self.timer_key(subtest),
            time_limit_s=subtest.time_limit_s,
            on_expire=self.handle_expiry,
            interval_s=self._tick_interval_s,
        )
        self._ticker.start()

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None


class SessionRegistry:
    """Active simulation sessions of this process, keyed by (user, simulation)."""

    def __init__(
        self,
        *,
        store: SimulationStore,
        anchors: InMemoryAnchorStore,
        clock: Clock,
        tick_interval_s: float = 1.0,
        on_aggregation_failure: AggregationFailureHook | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._timer = TimerState(store=anchors, clock=clock)
        self._tick_interval_s = tick_interval_s
        self._on_aggregation_failure = on_aggregation_failure
        self._sessions: dict[tuple[str, int], SimulationSession] = {}

    @property
    def timer(self) -> TimerState:
        return self._timer

    def get(self, user_id: str, simulation_id: int) -> SimulationSession:
        session = self._sessions.get((user_id, simulation_id))
        if session is None:
            raise SessionNotFound(f"Simulation {simulation_id} has not been started")
        return session

    async def start(self, user_id: str, simulation_id: int, *, restart: bool = False) -> SimulationSession:
        key = (user_id, simulation_id)
        session = self._sessions.get(key)
        if session is not None and restart:
            session.close()
            del self._sessions[key]
            for subtest in SUBTEST_SEQUENCE:
                self._timer.clear(TimerKey(user_id, simulation_id, subtest))
            logger.info(f"{user_id} restarts simulation {simulation_id}")
            session = None

        if session is None:
            session = SimulationSession(
                user_id=user_id,
                simulation_id=simulation_id,
                store=self._store,
                timer=self._timer,
                clock=self._clock,
                tick_interval_s=self._tick_interval_s,
                on_aggregation_failure=self._on_aggregation_failure,
            )
            await session.open()
            # registered only once opened, a failed open can simply be retried
            self._sessions[key] = session
        else:
            await session.open()
        return session

    def has_anchor(self, user_id: str, simulation_id: int) -> bool:
        return any(
            self._timer.has_anchor(TimerKey(user_id, simulation_id, s)) for s in SUBTEST_SEQUENCE
        )

    def logout(self, user_id: str) -> None:
        for key in [k for k in self._sessions if k[0] == user_id]:
            self._sessions.pop(key).close()
        self._timer.clear_user(user_id)

    def shutdown(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
