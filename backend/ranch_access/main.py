from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from ranch_access.api.routes import invitation_code, member
from ranch_access.core.startup import init_external_services, close_external_services
from ranch_access.core.security.cors import get_cors_middleware_config, get_cors_config
from ranch_access.core.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ロガーの設定
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_external_services(app)
    yield
    await close_external_services(app)


app = FastAPI(title="Ranch Access API", lifespan=lifespan)

# 環境別CORS設定
app.add_middleware(CORSMiddleware, **get_cors_middleware_config())

logger.info("環境: %s", settings.environment)
logger.debug("CORS設定: %s", get_cors_config())

""" ----------
 ルーター登録
---------- """
# 招待コード関連API（発行・一覧・引き換え・検証・削除・無効化）
app.include_router(invitation_code.router, prefix="/api")

# メンバー関連API（登録・自分の情報）
app.include_router(member.router, prefix="/api")


@app.get("/")
def root():
    return {"message": "Ranch Access"}


@app.get("/health")
def health():
    return {"status": "ok", "store_backend": settings.store_backend}
