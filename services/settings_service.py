"""
設定服務：房間設定與參賽者資料的 patch 套用

Patch 只覆蓋有送來的欄位，不整個取代物件。
"""
from schemas import RoomState, RoomSettings, SettingsPatch, ContestantState, ContestantPatch


def rescale_budget(remaining: int, old_budget: int, new_budget: int) -> int:
    """
    起始預算變更時重算剩餘預算：已花掉的金額保留，只移動上限

    範例：
        rescale_budget(80, 100, 150) -> 130（已花 20）
    """
    spent = old_budget - remaining
    return new_budget - spent


def apply_settings_patch(room: RoomState, patch: SettingsPatch) -> RoomSettings:
    """
    套用設定 patch；startingBudget 改變時同步調整所有玩家的 budgetRemaining

    參數：
        room: 房間狀態（工作副本）
        patch: 只含要修改的欄位

    返回：
        更新後的 RoomSettings
    """
    changes = patch.model_dump(exclude_unset=True, exclude_none=True)

    new_budget = changes.get("starting_budget")
    old_budget = room.settings.starting_budget
    if new_budget is not None and new_budget != old_budget:
        for player in room.players.values():
            player.budget_remaining = rescale_budget(
                player.budget_remaining, old_budget, new_budget
            )

    for field, value in changes.items():
        setattr(room.settings, field, value)
    return room.settings


def apply_contestant_patch(contestant: ContestantState, patch: ContestantPatch) -> ContestantState:
    for field, value in patch.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(contestant, field, value)
    return contestant
