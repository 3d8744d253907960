from pymongo import AsyncMongoClient
from pymongo import ASCENDING
from snbt.config import settings

_client: AsyncMongoClient | None = None


def get_client() -> AsyncMongoClient:
    # created lazily so importing the app never opens a connection
    global _client
    if _client is None:
        _client = AsyncMongoClient(settings.DATABASE_URL)
    return _client


def get_database(client: AsyncMongoClient | None = None):
    return (client or get_client())[settings.DATABASE_NAME]


async def close_client():
    global _client
    if _client is not None:
        await _client.close()
        _client = None


# create indexes once at startup
async def init_indexes(db=None):
    db = db if db is not None else get_database()

    # questions
    # index 1, fetch question by simulation (None for exercise bank) + subtest + number
    await db.questions.create_index(
        [("simulation_id", ASCENDING), ("subtest", ASCENDING), ("index", ASCENDING)],
        unique=True,
        name="question_lookup"
    )

    # answer keys, same shape as questions, kept in a separate collection so
    # question reads never carry the correct option
    await db.answer_keys.create_index(
        [("simulation_id", ASCENDING), ("subtest", ASCENDING), ("index", ASCENDING)],
        unique=True,
        name="answer_key_lookup"
    )

    # answer records
    # index 1, one slot per user + question, writes are replace_one upserts
    await db.answer_records.create_index(
        [("user_id", ASCENDING), ("simulation_id", ASCENDING), ("subtest", ASCENDING), ("question_index", ASCENDING)],
        unique=True,
        name="unique_user_answer"
    )

    # simulation results
    # index 1, single user result, overwritten on retry
    await db.simulation_results.create_index(
        [("user_id", ASCENDING), ("simulation_id", ASCENDING)],
        unique=True,
        name="user_result_lookup"
    )

# pymongo has native async support, motor is deprecated
