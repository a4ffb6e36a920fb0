"""
Auction resolution service.

Pure state computation: given a room whose auction has run out of time,
decide the outcome and apply it to the room value. Loading, saving and
broadcasting belong to AuctionManager.resolve.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from models import RoomPhase, AuctionStatus, ContestantStatus
from schemas import RoomState, CurrentAuction
from core.state_machine import (
    RoomStateMachine,
    AuctionStateMachine,
    ContestantStateMachine,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionOutcome:
    contestant_id: Optional[str]
    winner_id: Optional[str]
    price: int
    draft_order: Optional[int]
    draft_complete: bool

    @property
    def sold(self) -> bool:
        return self.winner_id is not None


def count_with_status(room: RoomState, status: ContestantStatus) -> int:
    return sum(1 for c in room.contestants.values() if c.status == status)


def resolve_auction(room: RoomState) -> ResolutionOutcome:
    """
    Apply the outcome of the running auction to ``room`` in place.

    With a bidder: the winner pays the current bid, gains the contestant
    on their roster, and nominates next. Without one the contestant goes
    back to the pool and the nominator is left alone. Either way the
    auction is reset to idle, and the room completes once nothing is left
    AVAILABLE.
    """
    auction = room.current_auction
    AuctionStateMachine.transition(room, AuctionStatus.ENDED)

    contestant_id = auction.contestant_id
    contestant = room.contestants.get(contestant_id) if contestant_id else None
    winner_id = auction.current_bidder_player_id
    winner = room.players.get(winner_id) if winner_id else None
    price = auction.current_bid
    draft_order = None

    if contestant is not None and winner is not None and price > 0:
        draft_order = count_with_status(room, ContestantStatus.DRAFTED) + 1

        winner.budget_remaining -= price
        winner.roster.append(contestant.id)

        ContestantStateMachine.transition(contestant, ContestantStatus.DRAFTED)
        contestant.drafted_by_player_id = winner.id
        contestant.drafted_price = price
        contestant.draft_order = draft_order

        room.nominator_player_id = winner.id
        logger.info(
            f"Room {room.id}: {contestant.name} drafted by {winner.name} "
            f"for {price} (pick #{draft_order})"
        )
    else:
        winner_id = None
        if contestant is not None and contestant.status == ContestantStatus.NOMINATED:
            ContestantStateMachine.transition(contestant, ContestantStatus.AVAILABLE)
        logger.info(f"Room {room.id}: no bids on {contestant_id}, returned to pool")

    AuctionStateMachine.transition(room, AuctionStatus.IDLE)
    room.current_auction = CurrentAuction()

    draft_complete = count_with_status(room, ContestantStatus.AVAILABLE) == 0
    if draft_complete and room.phase == RoomPhase.AUCTION:
        RoomStateMachine.transition(room, RoomPhase.COMPLETE)

    return ResolutionOutcome(
        contestant_id=contestant_id,
        winner_id=winner_id,
        price=price if winner_id else 0,
        draft_order=draft_order,
        draft_complete=draft_complete,
    )
