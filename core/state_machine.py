"""
狀態機：集中管理所有狀態轉換

三組轉換表：
- RoomPhase：LOBBY -> AUCTION -> COMPLETE（只能前進）
- AuctionStatus：IDLE -> RUNNING -> ENDED -> IDLE（IDLE -> IDLE 為重新提名）
- ContestantStatus：AVAILABLE -> NOMINATED -> DRAFTED | AVAILABLE

不在表內的轉換一律拋出 InvalidStateTransition，呼叫者不應直接改 status 欄位。
"""
from typing import Dict, FrozenSet
import logging

from models import RoomPhase, AuctionStatus, ContestantStatus
from schemas import RoomState, ContestantState
from core.exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


ROOM_TRANSITIONS: Dict[RoomPhase, FrozenSet[RoomPhase]] = {
    RoomPhase.LOBBY: frozenset({RoomPhase.AUCTION}),
    RoomPhase.AUCTION: frozenset({RoomPhase.COMPLETE}),
    RoomPhase.COMPLETE: frozenset(),
}

AUCTION_TRANSITIONS: Dict[AuctionStatus, FrozenSet[AuctionStatus]] = {
    AuctionStatus.IDLE: frozenset({AuctionStatus.RUNNING, AuctionStatus.IDLE}),
    AuctionStatus.RUNNING: frozenset({AuctionStatus.ENDED}),
    AuctionStatus.ENDED: frozenset({AuctionStatus.IDLE}),
}

CONTESTANT_TRANSITIONS: Dict[ContestantStatus, FrozenSet[ContestantStatus]] = {
    ContestantStatus.AVAILABLE: frozenset({ContestantStatus.NOMINATED}),
    ContestantStatus.NOMINATED: frozenset({ContestantStatus.DRAFTED, ContestantStatus.AVAILABLE}),
    ContestantStatus.DRAFTED: frozenset(),
}


def _check(kind: str, table: dict, current, target) -> None:
    if target not in table[current]:
        raise InvalidStateTransition(
            f"Invalid {kind} transition: {current.value} -> {target.value}"
        )


class RoomStateMachine:
    """Room phase 轉換"""

    @staticmethod
    def can_transition(current: RoomPhase, target: RoomPhase) -> bool:
        return target in ROOM_TRANSITIONS[current]

    @staticmethod
    def transition(room: RoomState, target: RoomPhase) -> RoomState:
        """
        轉換房間 phase

        參數：
            room: 房間狀態（工作副本）
            target: 目標 phase

        返回：
            同一個 room（已修改）

        異常：
            InvalidStateTransition: 轉換不在 ROOM_TRANSITIONS 內
        """
        _check("room phase", ROOM_TRANSITIONS, room.phase, target)
        logger.info(f"Room {room.id} phase {room.phase.value} -> {target.value}")
        room.phase = target
        return room


class AuctionStateMachine:
    """CurrentAuction.status 轉換"""

    @staticmethod
    def transition(room: RoomState, target: AuctionStatus) -> RoomState:
        _check("auction", AUCTION_TRANSITIONS, room.current_auction.status, target)
        room.current_auction.status = target
        return room


class ContestantStateMachine:
    """Contestant.status 轉換"""

    @staticmethod
    def transition(contestant: ContestantState, target: ContestantStatus) -> ContestantState:
        _check("contestant", CONTESTANT_TRANSITIONS, contestant.status, target)
        contestant.status = target
        return contestant
