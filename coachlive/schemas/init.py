"""Beanie initialization for ODM."""

from beanie import init_beanie
from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from coachlive.schemas.feedback import Feedback
from coachlive.schemas.participant import Participant
from coachlive.schemas.payment import Payment
from coachlive.schemas.session import Session
from coachlive.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

DOCUMENT_MODELS = [
    Session,
    Participant,
    Feedback,
    Payment,
]


async def init_beanie_odm(
    mongo_client: AsyncMongoClient | AsyncDatabase,
    database_name: str | None = None,
) -> None:
    """
    Initialize Beanie ODM with all document models.

    Args:
        mongo_client: Async client or database instance
        database_name: Database name (only needed if passing a client)
    """
    if isinstance(mongo_client, AsyncMongoClient):
        if not database_name:
            raise AppError(
                errcode=AppErrorCode.E_INVALID_REQUEST,
                errmesg="database_name required when passing AsyncMongoClient",
                status_code=HttpStatusCode.BAD_REQUEST,
            )
        database = mongo_client[database_name]
    else:
        database = mongo_client

    await init_beanie(database=database, document_models=DOCUMENT_MODELS)  # type: ignore[arg-type]


__all__ = ["DOCUMENT_MODELS", "init_beanie_odm"]
