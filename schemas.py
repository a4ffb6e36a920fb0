"""
Pydantic schemas

- 房間狀態（RoomState 及其子結構）：記憶體中的正本，同時也是廣播給所有連線的快照
- Patch：所有欄位皆為 optional，逐欄覆蓋，不整個取代
- Event payload：WebSocket 進來的訊息
- HTTP request / response

對外一律使用 camelCase（budgetRemaining、currentAuction...），endTime 以 epoch 毫秒表示。
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from models import RoomPhase, AuctionStatus, ContestantStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============ 房間狀態 ============

class RoomSettings(CamelModel):
    starting_budget: int = Field(100, gt=0)
    min_increment: int = Field(1, gt=0)
    timer_seconds: int = Field(30, gt=0)


class PlayerState(CamelModel):
    id: str
    name: str
    budget_remaining: int
    connected: bool = True
    roster: List[str] = Field(default_factory=list)  # 依 draft 順序


class ContestantState(CamelModel):
    id: str
    name: str
    bio: str = ""
    image_url: Optional[str] = None
    star: bool = False
    status: ContestantStatus = ContestantStatus.AVAILABLE
    drafted_by_player_id: Optional[str] = None
    drafted_price: Optional[int] = None
    draft_order: Optional[int] = None


class CurrentAuction(CamelModel):
    contestant_id: Optional[str] = None
    status: AuctionStatus = AuctionStatus.IDLE
    current_bid: int = 0
    current_bidder_player_id: Optional[str] = None
    end_time: Optional[datetime] = None

    @field_serializer("end_time")
    def _end_time_ms(self, end_time: Optional[datetime]) -> Optional[int]:
        if end_time is None:
            return None
        return int(end_time.timestamp() * 1000)


class RoomState(CamelModel):
    id: str
    phase: RoomPhase = RoomPhase.LOBBY
    settings: RoomSettings = Field(default_factory=RoomSettings)
    players: Dict[str, PlayerState] = Field(default_factory=dict)
    contestants: Dict[str, ContestantState] = Field(default_factory=dict)
    current_auction: CurrentAuction = Field(default_factory=CurrentAuction)
    nominator_player_id: Optional[str] = None
    version: int = 0
    # 永遠不會出現在快照裡
    admin_key: str = Field("", exclude=True, repr=False)

    def snapshot(self) -> dict:
        """廣播用的 JSON 快照（不含 admin key）"""
        return self.model_dump(mode="json", by_alias=True)


# ============ Patch ============

class ContestantCreate(CamelModel):
    name: str = Field(..., min_length=1)
    bio: str = ""
    image_url: Optional[str] = None
    star: bool = False


class ContestantPatch(CamelModel):
    """只開放顯示用欄位，status 與 draft 結果不能由 client 修改"""
    name: Optional[str] = Field(None, min_length=1)
    bio: Optional[str] = None
    image_url: Optional[str] = None
    star: Optional[bool] = None


class SettingsPatch(CamelModel):
    starting_budget: Optional[int] = Field(None, gt=0)
    min_increment: Optional[int] = Field(None, gt=0)
    timer_seconds: Optional[int] = Field(None, gt=0)


# ============ WebSocket event payloads ============

class JoinRoom(CamelModel):
    room_id: str
    player_name: str = Field(..., min_length=1)
    player_id: Optional[str] = None


class UpdateName(CamelModel):
    name: str = Field(..., min_length=1)


class AdminAction(CamelModel):
    admin_key: str = ""


class AddContestant(AdminAction):
    contestant: ContestantCreate


class EditContestant(AdminAction):
    contestant_id: str
    updates: ContestantPatch = Field(default_factory=ContestantPatch)


class DeleteContestant(AdminAction):
    contestant_id: str


class UpdateSettings(AdminAction):
    settings: SettingsPatch = Field(default_factory=SettingsPatch)


class Nominate(CamelModel):
    admin_key: Optional[str] = None
    contestant_id: str


class PlaceBid(CamelModel):
    amount: int


# ============ HTTP ============

class CreateRoomRequest(CamelModel):
    contestants: Optional[List[ContestantCreate]] = None
    settings: Optional[SettingsPatch] = None


class CreateRoomResponse(CamelModel):
    room_id: str
    host_admin_key: str
