from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, engine, SessionLocal, get_settings
from core.room_repository import SqlRoomRepository
from core.runtime import DraftRuntime
from api import rooms, websocket

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s -- %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_app(settings=None, bind=None, session_factory=None, clock=None) -> FastAPI:
    """
    建立 FastAPI app

    參數（測試時注入，正式環境使用預設值）：
        settings: Settings
        bind: SQLAlchemy engine（用來建立資料表）
        session_factory: Session factory
        clock: 回傳目前 UTC 時間的函式
    """
    settings = settings or get_settings()
    bind = bind or engine
    session_factory = session_factory or SessionLocal

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: 建立資料表與 runtime（store / 連線 / 計時器）
        Base.metadata.create_all(bind=bind)
        extra = {"clock": clock} if clock is not None else {}
        app.state.runtime = DraftRuntime.build(
            SqlRoomRepository(session_factory), settings, **extra
        )
        logger.info("Auction draft server started")
        yield
        # Shutdown: 停掉所有倒數計時器
        await app.state.runtime.shutdown()

    app = FastAPI(
        title="Auction Draft API",
        description="Live multi-party auction draft backend",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms.router)
    app.include_router(websocket.router)

    @app.get("/")
    def root():
        return {"message": "Auction Draft API", "status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


configure_logging(get_settings().log_level)
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
