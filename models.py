"""
資料模型：狀態列舉 + SQLAlchemy 資料表

列舉同時用於記憶體中的房間狀態（schemas.py）與資料庫欄位。
"""
import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text

from database import Base


class RoomPhase(str, enum.Enum):
    LOBBY = "LOBBY"
    AUCTION = "AUCTION"
    COMPLETE = "COMPLETE"


class AuctionStatus(str, enum.Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    ENDED = "ENDED"


class ContestantStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    NOMINATED = "NOMINATED"
    DRAFTED = "DRAFTED"


class Room(Base):
    __tablename__ = "rooms"

    id = Column(String(16), primary_key=True)  # 公開的房間代碼
    host_admin_key = Column(String(64), nullable=False)
    phase = Column(Enum(RoomPhase), nullable=False, default=RoomPhase.LOBBY)

    starting_budget = Column(Integer, nullable=False, default=100)
    min_increment = Column(Integer, nullable=False, default=1)
    timer_seconds = Column(Integer, nullable=False, default=30)

    current_contestant_id = Column(String(64), nullable=True)
    auction_status = Column(Enum(AuctionStatus), nullable=False, default=AuctionStatus.IDLE)
    current_bid = Column(Integer, nullable=False, default=0)
    current_bidder_player_id = Column(String(64), nullable=True)
    auction_end_time = Column(DateTime(timezone=True), nullable=True)
    nominator_player_id = Column(String(64), nullable=True)

    state_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class Player(Base):
    __tablename__ = "players"

    id = Column(String(64), primary_key=True)
    room_id = Column(String(16), ForeignKey("rooms.id"), primary_key=True)  # id 只在房間內唯一
    name = Column(String(100), nullable=False)
    budget_remaining = Column(Integer, nullable=False)
    connected = Column(Boolean, nullable=False, default=False)
    joined_order = Column(Integer, nullable=False, default=0)


class Contestant(Base):
    __tablename__ = "contestants"

    id = Column(String(64), primary_key=True)
    room_id = Column(String(16), ForeignKey("rooms.id"), primary_key=True)
    name = Column(String(200), nullable=False)
    bio = Column(Text, nullable=False, default="")
    image_url = Column(String(500), nullable=True)
    star = Column(Boolean, nullable=False, default=False)
    status = Column(Enum(ContestantStatus), nullable=False, default=ContestantStatus.AVAILABLE)
    drafted_by_player_id = Column(String(64), nullable=True)
    drafted_price = Column(Integer, nullable=True)
    draft_order = Column(Integer, nullable=True)
    catalog_order = Column(Integer, nullable=False, default=0)
