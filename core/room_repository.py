"""
Room Repository：房間聚合（room + players + contestants）的資料庫讀寫

對外只有兩個主要操作：
- load_room(room_id)：依 id 讀出完整 RoomState，不存在回傳 None
- upsert_room(room)：依 id 寫回完整 RoomState（單一 transaction）

這一層是同步的（SQLAlchemy Session），由 RoomStore 丟到 worker thread 執行。
"""
import time
from datetime import timezone
from typing import Callable, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from models import Room, Player, Contestant, ContestantStatus
from schemas import (
    RoomState,
    RoomSettings,
    PlayerState,
    ContestantState,
    CurrentAuction,
)
from database import transactional

logger = logging.getLogger(__name__)


def _as_utc(value):
    # SQLite 讀回來的 datetime 不帶時區
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_state(room: Room, players: List[Player], contestants: List[Contestant]) -> RoomState:
    """把資料表 row 組回 RoomState；roster 由已選走的參賽者依 draft_order 推導"""
    rosters: Dict[str, List[Contestant]] = {}
    for c in contestants:
        if c.status == ContestantStatus.DRAFTED and c.drafted_by_player_id:
            rosters.setdefault(c.drafted_by_player_id, []).append(c)

    player_states = {}
    for p in players:
        drafted = sorted(rosters.get(p.id, []), key=lambda c: c.draft_order or 0)
        player_states[p.id] = PlayerState(
            id=p.id,
            name=p.name,
            budget_remaining=p.budget_remaining,
            connected=p.connected,
            roster=[c.id for c in drafted],
        )

    contestant_states = {
        c.id: ContestantState(
            id=c.id,
            name=c.name,
            bio=c.bio or "",
            image_url=c.image_url,
            star=bool(c.star),
            status=c.status,
            drafted_by_player_id=c.drafted_by_player_id,
            drafted_price=c.drafted_price,
            draft_order=c.draft_order,
        )
        for c in contestants
    }

    return RoomState(
        id=room.id,
        phase=room.phase,
        settings=RoomSettings(
            starting_budget=room.starting_budget,
            min_increment=room.min_increment,
            timer_seconds=room.timer_seconds,
        ),
        players=player_states,
        contestants=contestant_states,
        current_auction=CurrentAuction(
            contestant_id=room.current_contestant_id,
            status=room.auction_status,
            current_bid=room.current_bid,
            current_bidder_player_id=room.current_bidder_player_id,
            end_time=_as_utc(room.auction_end_time),
        ),
        nominator_player_id=room.nominator_player_id,
        version=room.state_version,
        admin_key=room.host_admin_key,
    )


def _write_room_row(row: Room, state: RoomState) -> None:
    auction = state.current_auction
    row.host_admin_key = state.admin_key
    row.phase = state.phase
    row.starting_budget = state.settings.starting_budget
    row.min_increment = state.settings.min_increment
    row.timer_seconds = state.settings.timer_seconds
    row.current_contestant_id = auction.contestant_id
    row.auction_status = auction.status
    row.current_bid = auction.current_bid
    row.current_bidder_player_id = auction.current_bidder_player_id
    row.auction_end_time = auction.end_time
    row.nominator_player_id = state.nominator_player_id
    row.state_version = state.version


@transactional
def upsert_room_aggregate(db: Session, state: RoomState, deadline: Optional[float] = None) -> None:
    """
    依 id upsert 整個房間聚合

    流程：
    1. Room row（不存在就建立）
    2. Players：依 id upsert（玩家永遠不刪除）
    3. Contestants：依 id upsert，不在 state 裡的刪除（host 刪除參賽者）
    4. flush 後若已超過 deadline（time.monotonic），拋出 TimeoutError，整批 rollback

    注意：
        - 使用 @transactional，失敗整批 rollback，不會只寫一半
    """
    row = db.get(Room, state.id)
    if row is None:
        row = Room(id=state.id)
        db.add(row)
    _write_room_row(row, state)

    existing_players = {
        p.id: p for p in db.query(Player).filter(Player.room_id == state.id).all()
    }
    for order, player in enumerate(state.players.values()):
        p = existing_players.get(player.id)
        if p is None:
            p = Player(id=player.id, room_id=state.id)
            db.add(p)
        p.name = player.name
        p.budget_remaining = player.budget_remaining
        p.connected = player.connected
        p.joined_order = order

    existing_contestants = {
        c.id: c for c in db.query(Contestant).filter(Contestant.room_id == state.id).all()
    }
    for order, contestant in enumerate(state.contestants.values()):
        c = existing_contestants.pop(contestant.id, None)
        if c is None:
            c = Contestant(id=contestant.id, room_id=state.id)
            db.add(c)
        c.name = contestant.name
        c.bio = contestant.bio
        c.image_url = contestant.image_url
        c.star = contestant.star
        c.status = contestant.status
        c.drafted_by_player_id = contestant.drafted_by_player_id
        c.drafted_price = contestant.drafted_price
        c.draft_order = contestant.draft_order
        c.catalog_order = order

    for removed in existing_contestants.values():
        db.delete(removed)

    db.flush()
    if deadline is not None and time.monotonic() > deadline:
        raise TimeoutError(f"Write for room {state.id} missed its deadline, not committing")


class SqlRoomRepository:
    """persistence collaborator 的 SQLAlchemy 實作"""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def load_room(self, room_id: str) -> Optional[RoomState]:
        """
        依 id 讀取房間

        返回：
            RoomState；房間不存在時回傳 None
        """
        db = self._session_factory()
        try:
            room = db.get(Room, room_id)
            if room is None:
                return None
            players = (
                db.query(Player)
                .filter(Player.room_id == room_id)
                .order_by(Player.joined_order)
                .all()
            )
            contestants = (
                db.query(Contestant)
                .filter(Contestant.room_id == room_id)
                .order_by(Contestant.catalog_order)
                .all()
            )
            return _to_state(room, players, contestants)
        finally:
            db.close()

    def upsert_room(self, state: RoomState, deadline: Optional[float] = None) -> None:
        db = self._session_factory()
        try:
            upsert_room_aggregate(db, state, deadline)
        finally:
            db.close()

