import logging

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from ranch_access.core.config import Settings

# ロガーの設定
logger = logging.getLogger(__name__)


def create_mongo_client(settings: Settings) -> AsyncMongoClient:
    """MongoDBクライアントを作成（日時はタイムゾーン付きで扱う）"""
    if not settings.mongo_connection_string:
        raise RuntimeError("MONGO_CONNECTION_STRING is missing in environment variables")
    return AsyncMongoClient(
        settings.mongo_connection_string,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.mongo_timeout_ms,
    )


def get_database(client: AsyncMongoClient, settings: Settings) -> AsyncDatabase:
    return client[settings.mongo_database_name]
