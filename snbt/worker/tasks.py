import asyncio
import logging

from kombu.exceptions import OperationalError
from pymongo import AsyncMongoClient

from snbt.config import settings
from snbt.core.aggregator import ResultAggregator
from snbt.core.errors import AggregationFailure
from snbt.store.mongo import MongoSimulationStore
from snbt.worker.worker import celery_app

logger = logging.getLogger(__name__)


async def _aggregate(user_id: str, simulation_id: int) -> int:
    # own client per run, the worker has no long-lived event loop
    client = AsyncMongoClient(settings.DATABASE_URL)
    try:
        store = MongoSimulationStore(client[settings.DATABASE_NAME])
        result = await ResultAggregator(store).aggregate(user_id, simulation_id)
        return result.final_score
    finally:
        await client.close()


@celery_app.task(name="aggregate_simulation_result", bind=True)
def aggregate_simulation_result(self, user_id: str, simulation_id: int):
    try:
        final = asyncio.run(_aggregate(user_id, simulation_id))
    except AggregationFailure as e:
        logger.warning(f"Re-aggregation of simulation {simulation_id} for {user_id} failed, retrying: {e}")
        raise self.retry(
            exc=e,
            countdown=settings.AGGREGATION_RETRY_COUNTDOWN,
            max_retries=settings.AGGREGATION_MAX_RETRIES
        )

    return {
        "status": "completed",
        "simulation_id": simulation_id,
        "final_score": final
    }


def enqueue_aggregation(user_id: str, simulation_id: int) -> None:
    """Failure hook for sessions whose result could not be saved inline."""
    try:
        task = aggregate_simulation_result.delay(user_id, simulation_id)
    except OperationalError as e:
        # broker down: the user can still trigger it from the results page
        logger.error(f"Could not queue re-aggregation of simulation {simulation_id} for {user_id}: {e}")
        return
    logger.info(f"Queued re-aggregation of simulation {simulation_id} for {user_id}: {task.id}")
