from fastapi import APIRouter, Depends, HTTPException
from typing import List

from snbt.api.schemas.app_schemas import (
    NavigationOut, ProgressOut, SelectionRequest, SessionOut, SimulationSummaryOut
)
from snbt.api.dependencies.auth_dependencies import get_current_user, get_registry, get_store
from snbt.api.middleware.rate_limiter import answer_rate_limit  # custom rate limiter
from snbt.config import settings
from snbt.core.progress import simulation_overview, subtest_progress
from snbt.core.questions import load_question
from snbt.core.sequencer import InSubtest, SubtestExpiring
from snbt.core.subtests import SUBTEST_SEQUENCE, Subtest


app_router = APIRouter(
    prefix=settings.APP_PREFIX,
    tags=["app"],
    dependencies=[Depends(get_current_user)]  # all routes need auth
)


def _check_simulation(simulation_id: int):
    if not 1 <= simulation_id <= settings.SIMULATION_COUNT:
        raise HTTPException(404, "Simulation not found")


@app_router.get("/simulations", response_model=List[SimulationSummaryOut])
async def list_simulations(
    user=Depends(get_current_user),
    store=Depends(get_store),
    registry=Depends(get_registry)
):
    user_id = user["user_id"]
    results, anchored, answered = {}, set(), set()
    for sim_id in range(1, settings.SIMULATION_COUNT + 1):
        result = await store.fetch_simulation_result(user_id, sim_id)
        if result is not None:
            results[sim_id] = result
            continue
        if registry.has_anchor(user_id, sim_id):
            anchored.add(sim_id)
            continue
        for subtest in SUBTEST_SEQUENCE:
            if await store.fetch_answer_records(user_id, sim_id, subtest):
                answered.add(sim_id)
                break

    overview = simulation_overview(settings.SIMULATION_COUNT, results=results, anchored=anchored, answered=answered)
    return [
        SimulationSummaryOut(simulation_id=s.simulation_id, status=s.status, final_score=s.final_score)
        for s in overview
    ]


@app_router.post("/simulation/{simulation_id}/start", response_model=SessionOut)
async def start_simulation(
    simulation_id: int,
    restart: bool = False,
    user=Depends(get_current_user),
    store=Depends(get_store),
    registry=Depends(get_registry)
):
    _check_simulation(simulation_id)
    session = await registry.start(user["user_id"], simulation_id, restart=restart)
    return await _session_view(session, store)


@app_router.get("/simulation/{simulation_id}/session", response_model=SessionOut)
async def get_session(
    simulation_id: int,
    user=Depends(get_current_user),
    store=Depends(get_store),
    registry=Depends(get_registry)
):
    session = registry.get(user["user_id"], simulation_id)
    await session.check_expiry()
    return await _session_view(session, store)


@app_router.put("/simulation/{simulation_id}/selection", response_model=SessionOut)
@answer_rate_limit
async def select_option(
    simulation_id: int,
    payload: SelectionRequest,
    user=Depends(get_current_user),
    registry=Depends(get_registry)
):
    # local only, saved on the next navigation
    session = registry.get(user["user_id"], simulation_id)
    session.select(payload.selected_option)
    return SessionOut.from_snapshot(session.snapshot())


@app_router.post("/simulation/{simulation_id}/next", response_model=NavigationOut)
@answer_rate_limit
async def next_question(
    simulation_id: int,
    user=Depends(get_current_user),
    registry=Depends(get_registry)
):
    session = registry.get(user["user_id"], simulation_id)
    return NavigationOut.from_outcome(await session.next())


@app_router.post("/simulation/{simulation_id}/previous", response_model=NavigationOut)
@answer_rate_limit
async def previous_question(
    simulation_id: int,
    user=Depends(get_current_user),
    registry=Depends(get_registry)
):
    session = registry.get(user["user_id"], simulation_id)
    return NavigationOut.from_outcome(await session.previous())


@app_router.post("/simulation/{simulation_id}/goto/{index}", response_model=NavigationOut)
@answer_rate_limit
async def go_to_question(
    simulation_id: int,
    index: int,
    user=Depends(get_current_user),
    registry=Depends(get_registry)
):
    session = registry.get(user["user_id"], simulation_id)
    return NavigationOut.from_outcome(await session.go_to(index))


@app_router.post("/simulation/{simulation_id}/leave")
@answer_rate_limit
async def leave_simulation(
    simulation_id: int,
    user=Depends(get_current_user),
    registry=Depends(get_registry)
):
    session = registry.get(user["user_id"], simulation_id)
    write = await session.leave()
    return {
        "status": "left",
        "saved": write.ok if write is not None else None
    }


@app_router.get("/simulation/{simulation_id}/{subtest}/progress", response_model=ProgressOut)
async def simulation_progress(
    simulation_id: int,
    subtest: Subtest,
    user=Depends(get_current_user),
    store=Depends(get_store)
):
    _check_simulation(simulation_id)
    records = await store.fetch_answer_records(user["user_id"], simulation_id, subtest)
    return ProgressOut.from_progress(subtest_progress(records, subtest))


async def _session_view(session, store) -> SessionOut:
    snap = session.snapshot()
    question = None
    if isinstance(snap.state, (InSubtest, SubtestExpiring)):
        question = await load_question(store, session.simulation_id, snap.state.subtest, snap.state.question_index)
    return SessionOut.from_snapshot(snap, question)
