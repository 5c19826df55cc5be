import logging
from fastapi import FastAPI
from ranch_access.core.config import get_settings
from ranch_access.crud.invitation_code import InMemoryInvitationCodeStore, MongoInvitationCodeStore
from ranch_access.crud.member import InMemoryMemberStore, MongoMemberStore
from ranch_access.db.mongo import create_mongo_client, get_database
from ranch_access.db.session import init_db

# ロガーの設定
logger = logging.getLogger(__name__)

__all__ = ["init_external_services", "close_external_services"]

async def init_external_services(app: FastAPI):
    """ストア・監査DBを初期化して app.state に載せる"""
    settings = get_settings()

    if settings.store_backend == "memory":
        app.state.mongo_client = None
        app.state.invitation_store = InMemoryInvitationCodeStore()
        app.state.member_store = InMemoryMemberStore()
        logger.warning("using in-memory stores; data is lost on restart")
    else:
        client = create_mongo_client(settings)
        database = get_database(client, settings)
        invitation_store = MongoInvitationCodeStore(database[settings.invitation_codes_collection])
        member_store = MongoMemberStore(database[settings.members_collection])
        await invitation_store.ensure_indexes()
        await member_store.ensure_indexes()
        app.state.mongo_client = client
        app.state.invitation_store = invitation_store
        app.state.member_store = member_store
        logger.info("MongoDB stores initialized (database=%s)", settings.mongo_database_name)

    init_db()

async def close_external_services(app: FastAPI):
    client = getattr(app.state, "mongo_client", None)
    if client is not None:
        await client.close()
        app.state.mongo_client = None
        logger.info("MongoDB client closed")
