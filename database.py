from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./auction_draft.db"

    # 新房間的預設規則
    default_starting_budget: int = 100
    default_min_increment: int = 1
    default_timer_seconds: int = 30

    # 計時器與防狙擊（anti-snipe）
    tick_interval_seconds: float = 1.0
    anti_snipe_threshold_seconds: int = 10
    anti_snipe_extension_seconds: int = 5

    # 資料庫呼叫逾時（秒），避免 handler 卡住
    persistence_timeout_seconds: float = 5.0

    cast_file: str = "cast.json"
    log_level: str = "INFO"
    cors_allow_origins: str = "*"

    model_config = SettingsConfigDict(env_file=".env")


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


def make_engine(database_url: str, timeout: float = 5.0):
    # SQLite 需要特殊設定：connect_args={"check_same_thread": False}
    # 持久化呼叫跑在 worker thread 裡（asyncio.to_thread），必須允許跨執行緒存取；
    # timeout 限制等待資料庫鎖的時間，寫入卡住時由 driver 拋錯而不是無限等待
    sqlite_args = {"check_same_thread": False, "timeout": timeout}
    return create_engine(
        database_url,
        connect_args=sqlite_args if database_url.startswith("sqlite") else {},
        pool_pre_ping=True
    )


engine = make_engine(settings.database_url, settings.persistence_timeout_seconds)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def transactional(func):
    """
    Transaction decorator：整個房間聚合在同一個 transaction 內寫入

    被裝飾的函式第一個參數必須是 Session，函式內不要自己 commit。
    成功時 commit；任何異常先 rollback 再往上拋，由 RoomStore 轉成 PersistenceFailure，
    所以資料庫裡不會留下只寫了一半的房間。
    """
    @wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        if not isinstance(db, Session):
            raise TypeError(f"{func.__name__}() needs a Session as its first argument")

        try:
            result = func(db, *args, **kwargs)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning(f"Rolled back {func.__name__}: {e}")
            raise
        return result

    return wrapper
