import logging
import os
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from ranch_access.core.config import settings
from ranch_access.db.base_class import Base

# ロガーの設定
logger = logging.getLogger(__name__)


def _ensure_sqlite_dir(database_url: str) -> None:
    """SQLiteファイルの親ディレクトリを作成（sqlite:///./data/audit.sqlite など）"""
    if not database_url.startswith("sqlite:///"):
        return
    folder = os.path.dirname(database_url.replace("sqlite:///", "", 1))
    if folder:
        os.makedirs(folder, exist_ok=True)


def create_audit_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        _ensure_sqlite_dir(database_url)
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


# すでにconfig.pyで定義済みのURLを使う
engine = create_audit_engine(settings.audit_database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = engine) -> None:
    """監査ログテーブルを作成（既存テーブルは変更しない）"""
    # モデルを登録してから create_all する
    from ranch_access.core.security.audit import models  # noqa: F401
    Base.metadata.create_all(bind=bind)
    logger.info("audit tables ready")


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
