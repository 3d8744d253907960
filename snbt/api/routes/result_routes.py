from fastapi import APIRouter, Depends, HTTPException
from kombu.exceptions import OperationalError

from snbt.api.dependencies.auth_dependencies import get_current_user, get_store
from snbt.api.schemas.result_schemas import RecalculateResponse, UserResult
from snbt.worker.tasks import aggregate_simulation_result

results_router = APIRouter(prefix="/results", tags=["results"], dependencies=[Depends(get_current_user)])


@results_router.get("/{simulation_id}", response_model=UserResult)
async def get_user_result(
    simulation_id: int,
    user=Depends(get_current_user),
    store=Depends(get_store)
):
    result = await store.fetch_simulation_result(user["user_id"], simulation_id)
    if result is None:
        raise HTTPException(404, "Results not available yet")
    return UserResult.from_result(result)


@results_router.post("/{simulation_id}/recalculate", response_model=RecalculateResponse, status_code=202)
async def recalculate_result(
    simulation_id: int,
    user=Depends(get_current_user)
):
    # scores every subtest again from the saved answers, in the worker
    try:
        task = aggregate_simulation_result.delay(user["user_id"], simulation_id)
    except OperationalError:
        raise HTTPException(503, "Result recalculation is unavailable, try again later")
    return {
        "status": "queued",
        "task_id": task.id
    }
