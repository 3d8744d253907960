from fastapi import APIRouter, Depends, HTTPException

from snbt.api.schemas.app_schemas import ExerciseAnswerOut, ProgressOut, QuestionOut, SelectionRequest
from snbt.api.dependencies.auth_dependencies import get_current_user, get_store
from snbt.api.middleware.rate_limiter import answer_rate_limit  # custom rate limiter
from snbt.config import settings
from snbt.core.models import AnswerKey
from snbt.core.progress import subtest_progress
from snbt.core.questions import load_question
from snbt.core.recorder import AnswerRecorder
from snbt.core.subtests import Subtest

# practice bank: untimed, answers checked right away, simulation_id is None
exercise_router = APIRouter(
    prefix=f"{settings.APP_PREFIX}/exercise",
    tags=["exercise"],
    dependencies=[Depends(get_current_user)]
)


def _subtest(category: str) -> Subtest:
    try:
        return Subtest.from_category(category)
    except ValueError:
        raise HTTPException(404, f"Invalid category: {category}")


# declared before /{index} so "progress" is not read as a question number
@exercise_router.get("/{category}/progress", response_model=ProgressOut)
async def exercise_progress(
    category: str,
    user=Depends(get_current_user),
    store=Depends(get_store)
):
    subtest = _subtest(category)
    records = await store.fetch_answer_records(user["user_id"], None, subtest)
    return ProgressOut.from_progress(subtest_progress(records, subtest, reveal_correctness=True))


@exercise_router.get("/{category}/{index}", response_model=QuestionOut)
async def get_exercise_question(
    category: str,
    index: int,
    store=Depends(get_store)
):
    question = await load_question(store, None, _subtest(category), index)
    return QuestionOut.from_question(question)


@exercise_router.put("/{category}/{index}/answer", response_model=ExerciseAnswerOut)
@answer_rate_limit
async def answer_exercise_question(
    category: str,
    index: int,
    payload: SelectionRequest,
    user=Depends(get_current_user),
    store=Depends(get_store)
):
    subtest = _subtest(category)
    # only answer questions that exist
    await load_question(store, None, subtest, index)
    key = AnswerKey(user_id=user["user_id"], simulation_id=None, subtest=subtest, question_index=index)
    record = await AnswerRecorder(store).record(key, payload.selected_option)
    return ExerciseAnswerOut(
        subtest=subtest,
        question_index=index,
        selected_option=record.selected_option,
        is_correct=record.is_correct
    )
