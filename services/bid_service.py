"""
出價服務：出價驗證與防狙擊（anti-snipe）延長

純計算邏輯，不讀寫資料庫、不改房間狀態；
接受出價後由 AuctionManager 更新 currentBid / currentBidderPlayerId。
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from models import AuctionStatus
from schemas import CurrentAuction, PlayerState

NO_ACTIVE_AUCTION = "NO_ACTIVE_AUCTION"
BELOW_MINIMUM = "BELOW_MINIMUM"
INSUFFICIENT_BUDGET = "INSUFFICIENT_BUDGET"
AUCTION_ENDED = "AUCTION_ENDED"


@dataclass(frozen=True)
class BidDecision:
    accepted: bool
    code: Optional[str] = None
    message: Optional[str] = None
    minimum: Optional[int] = None

    @classmethod
    def accept(cls) -> "BidDecision":
        return cls(accepted=True)

    @classmethod
    def reject(cls, code: str, message: str, minimum: Optional[int] = None) -> "BidDecision":
        return cls(accepted=False, code=code, message=message, minimum=minimum)


def minimum_bid(auction: CurrentAuction, min_increment: int) -> int:
    return auction.current_bid + min_increment


def validate_bid(
    auction: CurrentAuction,
    player: PlayerState,
    amount: int,
    min_increment: int,
    now: datetime,
) -> BidDecision:
    """
    判斷一筆出價是否有效

    依序檢查（第一個失敗就回傳）：
    1. 拍賣不是 RUNNING -> NO_ACTIVE_AUCTION
    2. amount < currentBid + minIncrement -> BELOW_MINIMUM（附最低金額）
    3. amount > 玩家剩餘預算 -> INSUFFICIENT_BUDGET
    4. 已超過 endTime -> AUCTION_ENDED

    第 4 點以 endTime 判斷，而不是計時器是否已觸發，
    所以計時器結算前送達的遲到出價也會被拒絕。

    參數：
        auction: 目前的拍賣
        player: 出價的玩家
        amount: 出價金額
        min_increment: 最小加價
        now: 目前時間（UTC）

    返回：
        BidDecision
    """
    if auction.status != AuctionStatus.RUNNING:
        return BidDecision.reject(NO_ACTIVE_AUCTION, "No active auction")

    minimum = minimum_bid(auction, min_increment)
    if amount < minimum:
        return BidDecision.reject(
            BELOW_MINIMUM, f"Bid must be at least {minimum}", minimum=minimum
        )

    if amount > player.budget_remaining:
        return BidDecision.reject(INSUFFICIENT_BUDGET, "Insufficient budget")

    if auction.end_time is not None and now >= auction.end_time:
        return BidDecision.reject(AUCTION_ENDED, "Auction has ended")

    return BidDecision.accept()


def seconds_until(end_time: datetime, now: datetime) -> int:
    """剩餘秒數（無條件進位，不小於 0）"""
    return max(0, math.ceil((end_time - now).total_seconds()))


def extend_deadline(
    end_time: Optional[datetime],
    now: datetime,
    threshold_seconds: int = 10,
    extension_seconds: int = 5,
) -> Optional[datetime]:
    """
    防狙擊：剩餘時間少於 threshold 時，把截止時間往後延 extension 秒

    返回：
        新的截止時間；不需要延長時回傳 None

    範例：
        剩 1 秒 -> endTime + 5s
        剩 15 秒 -> None
    """
    if end_time is None:
        return None
    if seconds_until(end_time, now) < threshold_seconds:
        return end_time + timedelta(seconds=extension_seconds)
    return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
