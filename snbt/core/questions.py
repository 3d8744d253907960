import logging
from typing import Any, Mapping, Optional

from snbt.core.errors import MalformedQuestionData, QuestionNotFound
from snbt.core.models import CanonicalAnswer, Question
from snbt.core.subtests import OPTIONS, Subtest

logger = logging.getLogger(__name__)


def question_from_document(doc: Mapping[str, Any], subtest: Subtest, index: int) -> Question:
    """Validate a stored question document.

    A question needs non-empty text and a mapping with all five options A-E.
    Options stored in any other shape are rejected, not parsed.
    """
    text = doc.get("question")
    if not isinstance(text, str) or not text.strip():
        raise MalformedQuestionData(subtest.value, index, "missing question text")

    options = doc.get("options")
    if not isinstance(options, Mapping):
        raise MalformedQuestionData(subtest.value, index, "options must be a mapping of A-E")

    missing = [o for o in OPTIONS if not isinstance(options.get(o), str) or not options.get(o)]
    if missing:
        raise MalformedQuestionData(
            subtest.value, index, f"missing one or more options ({', '.join(missing)})"
        )

    return Question(
        simulation_id=doc.get("simulation_id"),
        subtest=subtest,
        index=index,
        question=text,
        options={o: options[o] for o in OPTIONS},
    )


def canonical_from_document(
    doc: Optional[Mapping[str, Any]], subtest: Subtest, index: int
) -> Optional[CanonicalAnswer]:
    """Stored answer key, or None when absent or not one of A-E."""
    if doc is None:
        return None
    correct = doc.get("correct_option")
    if correct not in OPTIONS:
        logger.warning(f"Invalid answer key for {subtest.value} question {index}: {correct!r}")
        return None
    return CanonicalAnswer(
        simulation_id=doc.get("simulation_id"),
        subtest=subtest,
        index=index,
        correct_option=correct,
    )


async def load_question(store, simulation_id: Optional[int], subtest: Subtest, index: int) -> Question:
    if not 1 <= index <= subtest.question_count:
        raise QuestionNotFound(subtest.value, index)
    question = await store.fetch_question(simulation_id, subtest, index)
    if question is None:
        raise QuestionNotFound(subtest.value, index)
    return question
