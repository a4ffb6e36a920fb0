from schemas import RoomState, PlayerState, ContestantState, SettingsPatch, ContestantPatch
from services.settings_service import rescale_budget, apply_settings_patch, apply_contestant_patch


def test_rescale_keeps_amount_spent():
    assert rescale_budget(80, 100, 150) == 130
    assert rescale_budget(100, 100, 50) == 50
    assert rescale_budget(10, 100, 50) == -40


def test_patch_only_touches_sent_fields():
    room = RoomState(id="ROOM01")
    settings = apply_settings_patch(room, SettingsPatch(timer_seconds=45))

    assert settings.timer_seconds == 45
    assert settings.starting_budget == 100
    assert settings.min_increment == 1


def test_starting_budget_change_rescales_every_player():
    room = RoomState(
        id="ROOM01",
        players={
            "p1": PlayerState(id="p1", name="Alice", budget_remaining=80),
            "p2": PlayerState(id="p2", name="Bob", budget_remaining=100),
        },
    )
    apply_settings_patch(room, SettingsPatch.model_validate({"startingBudget": 150}))

    assert room.settings.starting_budget == 150
    assert room.players["p1"].budget_remaining == 130
    assert room.players["p2"].budget_remaining == 150


def test_same_budget_leaves_players_alone():
    room = RoomState(
        id="ROOM01",
        players={"p1": PlayerState(id="p1", name="Alice", budget_remaining=80)},
    )
    apply_settings_patch(room, SettingsPatch(starting_budget=100, min_increment=5))

    assert room.players["p1"].budget_remaining == 80
    assert room.settings.min_increment == 5


def test_contestant_patch_merges():
    contestant = ContestantState(id="c1", name="Colby", bio="Texan", star=True)
    apply_contestant_patch(contestant, ContestantPatch.model_validate({"imageUrl": "x.png"}))

    assert contestant.image_url == "x.png"
    assert contestant.name == "Colby"
    assert contestant.bio == "Texan"
    assert contestant.star is True
