from datetime import datetime, timezone

import pytest

from snbt.core.aggregator import ResultAggregator, final_score, round_half_up, score_subtest, subtest_score
from snbt.core.errors import AggregationFailure
from snbt.core.models import AnswerRecord
from snbt.core.subtests import Subtest

WHEN = datetime(2025, 1, 1, tzinfo=timezone.utc)


def add_answers(store, subtest, correct, wrong=0, user_id="u1", simulation_id=1):
    for i in range(1, correct + wrong + 1):
        store.records[(user_id, simulation_id, subtest, i)] = AnswerRecord(
            user_id=user_id,
            simulation_id=simulation_id,
            subtest=subtest,
            question_index=i,
            selected_option="A",
            is_correct=i <= correct,
            recorded_at=WHEN,
        )


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2


def test_subtest_score():
    assert subtest_score(45, 90) == 250
    assert subtest_score(1, 90) == 6  # 5.56
    assert subtest_score(20, 20) == 500
    assert subtest_score(0, 25) == 0


def test_final_score_is_rounded_mean():
    assert final_score([250, 300, 300, 350]) == 300
    assert final_score([1, 2, 0, 0]) == 1
    assert final_score([]) == 0


def test_score_subtest_ignores_out_of_range_and_duplicates():
    recs = [
        AnswerRecord(user_id="u", simulation_id=1, subtest=Subtest.ENGLISH_LITERACY,
                     question_index=i, selected_option="A", is_correct=True, recorded_at=WHEN)
        for i in (1, 1, 2, 21)
    ]
    r = score_subtest(Subtest.ENGLISH_LITERACY, recs)
    assert r.correct_count == 2
    assert r.score == 50


async def test_aggregate_reference_sample(store, clock):
    add_answers(store, Subtest.TPS, 45, wrong=10)
    add_answers(store, Subtest.INDONESIAN_LITERACY, 15)
    add_answers(store, Subtest.ENGLISH_LITERACY, 12, wrong=8)
    add_answers(store, Subtest.MATH_REASONING, 14)

    result = await ResultAggregator(store, clock).aggregate("u1", 1)

    assert [r.score for r in result.subtest_results] == [250, 300, 300, 350]
    assert result.final_score == 300
    assert store.results[("u1", 1)] == result


async def test_no_answers_scores_zero(store, clock):
    result = await ResultAggregator(store, clock).aggregate("u1", 2)
    assert [r.score for r in result.subtest_results] == [0, 0, 0, 0]
    assert [r.total_questions for r in result.subtest_results] == [90, 25, 20, 20]
    assert result.final_score == 0


async def test_other_users_answers_do_not_count(store, clock):
    add_answers(store, Subtest.MATH_REASONING, 20, user_id="someone-else")
    result = await ResultAggregator(store, clock).aggregate("u1", 1)
    assert result.final_score == 0


async def test_retry_overwrites_result(store, clock):
    aggregator = ResultAggregator(store, clock)
    await aggregator.aggregate("u1", 1)
    add_answers(store, Subtest.MATH_REASONING, 20)
    clock.advance(3600)

    second = await aggregator.aggregate("u1", 1)

    assert store.results[("u1", 1)] == second
    assert second.final_score == 125
    assert store.result_writes == 2


async def test_read_failure_writes_nothing(store, clock):
    store.fail_reads = True
    with pytest.raises(AggregationFailure):
        await ResultAggregator(store, clock).aggregate("u1", 1)
    assert store.results == {}


async def test_write_failure_raises_aggregation_failure(store, clock):
    store.fail_result_writes = True
    with pytest.raises(AggregationFailure):
        await ResultAggregator(store, clock).aggregate("u1", 1)
    assert store.results == {}
