from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from dotenv import load_dotenv
import logging
from pathlib import Path

# ロガーの設定
logger = logging.getLogger(__name__)

load_dotenv()

# パッケージ基準の絶対パスを取得（backend/ranch_access）
BASE_DIR = Path(__file__).resolve().parent.parent

# .envファイルの絶対パスを明示的に設定
ENV_FILE_PATH = BASE_DIR.parent / ".env"

class Settings(BaseSettings):
    # 環境設定
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # 招待コードストアのバックエンド（mongo / memory）
    store_backend: str = Field(default="mongo", alias="STORE_BACKEND")

    # MongoDB（招待コード・メンバーのドキュメントストア）
    mongo_connection_string: str = Field(default="mongodb://localhost:27017", alias="MONGO_CONNECTION_STRING")
    mongo_database_name: str = Field(default="ganaderia", alias="MONGO_DATABASE_NAME")
    invitation_codes_collection: str = Field(default="invitation_codes", alias="INVITATION_CODES_COLLECTION")
    members_collection: str = Field(default="members", alias="MEMBERS_COLLECTION")
    mongo_timeout_ms: int = Field(default=5000, alias="MONGO_TIMEOUT_MS")

    # 監査ログ（リレーショナルDB）
    audit_database_url: str = Field(default="sqlite:///./data/audit.sqlite", alias="AUDIT_DATABASE_URL")

    # 認証
    secret_key: str = Field(default="your-secret-key-here-make-it-long-and-secure", alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # 招待コードの生成設定
    default_code_length: int = Field(default=6, alias="DEFAULT_CODE_LENGTH")
    personalized_code_length: int = Field(default=8, alias="PERSONALIZED_CODE_LENGTH")
    max_code_length: int = Field(default=12, alias="MAX_CODE_LENGTH")
    default_code_ttl_days: int = Field(default=30, alias="DEFAULT_CODE_TTL_DAYS")
    code_generation_max_attempts: int = Field(default=20, alias="CODE_GENERATION_MAX_ATTEMPTS")

    # 引き換え時の楽観的並行制御のリトライ上限
    redeem_max_attempts: int = Field(default=3, alias="REDEEM_MAX_ATTEMPTS")

    # 牧場オーナー登録時に自動発行するコード
    owner_code_role_type: str = Field(default="admin", alias="OWNER_CODE_ROLE_TYPE")
    owner_code_uses: int = Field(default=10, alias="OWNER_CODE_USES")
    owner_code_ttl_days: int = Field(default=365, alias="OWNER_CODE_TTL_DAYS")

    # CORS設定（カンマ区切りの文字列で受け取り、プロパティでパース）
    cors_allow_origins_str: str = Field(default="http://localhost:3000", alias="CORS_ALLOW_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods_str: str = Field(default="GET,POST,PUT,DELETE,OPTIONS", alias="CORS_ALLOW_METHODS")
    cors_allow_headers_str: str = Field(default="*", alias="CORS_ALLOW_HEADERS")
    cors_max_age: int = Field(default=86400, alias="CORS_MAX_AGE")  # 24時間

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        extra="ignore",  # 未定義の環境変数は無視
        populate_by_name=True,
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("store_backend", mode="before")
    @classmethod
    def _norm_store_backend(cls, v) -> str:
        s = ("" if v is None else str(v)).strip().lower()
        if s not in ("mongo", "memory"):
            raise ValueError("STORE_BACKEND must be 'mongo' or 'memory'")
        return s

    @property
    def cors_allow_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allow_origins_str.split(",") if origin.strip()]

    @property
    def cors_allow_methods(self) -> list[str]:
        return [method.strip() for method in self.cors_allow_methods_str.split(",") if method.strip()]

    @property
    def cors_allow_headers(self) -> list[str]:
        if self.cors_allow_headers_str == "*":
            return ["*"]
        return [header.strip() for header in self.cors_allow_headers_str.split(",") if header.strip()]


settings = Settings()

logger.debug("Loaded settings: environment=%s store_backend=%s", settings.environment, settings.store_backend)

@lru_cache
def get_settings() -> Settings:
    return settings
