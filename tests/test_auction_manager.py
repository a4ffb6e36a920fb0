import asyncio
from datetime import timedelta

import pytest

from models import RoomPhase, AuctionStatus, ContestantStatus
from schemas import SettingsPatch
from services.bid_service import BELOW_MINIMUM, AUCTION_ENDED, INSUFFICIENT_BUDGET
from core.exceptions import (
    Unauthorized,
    InvalidState,
    AuctionAlreadyRunning,
    NoContestantNominated,
    ContestantNotAvailable,
    BidRejected,
)
from conftest import T0, build_engine, cast


def run(scenario):
    asyncio.run(scenario())


async def drafting_room(engine, contestants=("Colby", "Sandra")):
    """房間已開始 draft：Alice、Bob 兩位玩家"""
    room = await engine.rooms.create_room(cast(*contestants))
    _, alice = await engine.rooms.join(room.id, "Alice")
    _, bob = await engine.rooms.join(room.id, "Bob")
    await engine.rooms.start_draft(room.id, room.admin_key)
    ids = {c.name: c.id for c in room.contestants.values()}
    return room, alice, bob, ids


async def running_auction(engine, name="Colby", **kwargs):
    room, alice, bob, ids = await drafting_room(engine, **kwargs)
    await engine.auctions.nominate(room.id, ids[name], admin_key=room.admin_key)
    await engine.auctions.start_auction(room.id, room.admin_key)
    return room, alice, bob, ids


# ============ 提名 ============

def test_admin_nominates():
    async def scenario():
        engine = build_engine()
        room, _, _, ids = await drafting_room(engine)
        current = await engine.auctions.nominate(room.id, ids["Colby"], admin_key=room.admin_key)

        assert current.contestants[ids["Colby"]].status == ContestantStatus.NOMINATED
        assert current.current_auction.contestant_id == ids["Colby"]
        assert current.current_auction.status == AuctionStatus.IDLE
        assert current.current_auction.current_bid == 0

    run(scenario)


def test_unauthorized_nominate_changes_nothing():
    async def scenario():
        engine = build_engine()
        room, _, bob, ids = await drafting_room(engine)
        before = await engine.rooms.get_room(room.id)
        published = len(engine.messenger.published)

        with pytest.raises(Unauthorized) as exc:
            await engine.auctions.nominate(room.id, ids["Colby"], player_id=bob.id)
        assert str(exc.value) == "It's not your turn to nominate"

        with pytest.raises(Unauthorized):
            await engine.auctions.nominate(room.id, ids["Colby"], player_id=bob.id, admin_key="nope")

        current = await engine.rooms.get_room(room.id)
        assert current is before
        assert current.contestants[ids["Colby"]].status == ContestantStatus.AVAILABLE
        assert len(engine.messenger.published) == published

    run(scenario)


def test_nominate_requires_draft_in_progress():
    async def scenario():
        engine = build_engine()
        room = await engine.rooms.create_room(cast("Colby"))
        contestant_id = next(iter(room.contestants))
        with pytest.raises(InvalidState):
            await engine.auctions.nominate(room.id, contestant_id, admin_key=room.admin_key)

    run(scenario)


def test_cannot_nominate_during_running_auction():
    async def scenario():
        engine = build_engine()
        room, _, _, ids = await running_auction(engine)
        with pytest.raises(AuctionAlreadyRunning):
            await engine.auctions.nominate(room.id, ids["Sandra"], admin_key=room.admin_key)

    run(scenario)


def test_renominating_returns_previous_pick_to_pool():
    async def scenario():
        engine = build_engine()
        room, _, _, ids = await drafting_room(engine)
        await engine.auctions.nominate(room.id, ids["Colby"], admin_key=room.admin_key)
        current = await engine.auctions.nominate(room.id, ids["Sandra"], admin_key=room.admin_key)

        assert current.contestants[ids["Colby"]].status == ContestantStatus.AVAILABLE
        assert current.contestants[ids["Sandra"]].status == ContestantStatus.NOMINATED
        assert current.current_auction.contestant_id == ids["Sandra"]

        with pytest.raises(ContestantNotAvailable):
            await engine.auctions.nominate(room.id, ids["Sandra"], admin_key=room.admin_key)

    run(scenario)


# ============ 開始拍賣 ============

def test_start_auction_sets_deadline_and_timer():
    async def scenario():
        engine = build_engine()
        room, _, _, ids = await running_auction(engine)
        current = await engine.rooms.get_room(room.id)

        auction = current.current_auction
        assert auction.status == AuctionStatus.RUNNING
        assert auction.end_time == T0 + timedelta(seconds=30)
        assert engine.timer.is_running(room.id)

        snapshot = engine.messenger.states(room.id)[-1]
        assert snapshot["currentAuction"]["endTime"] == int((T0 + timedelta(seconds=30)).timestamp() * 1000)

    run(scenario)


def test_start_auction_errors():
    async def scenario():
        engine = build_engine()
        room, _, _, ids = await drafting_room(engine)
        with pytest.raises(NoContestantNominated):
            await engine.auctions.start_auction(room.id, room.admin_key)

        await engine.auctions.nominate(room.id, ids["Colby"], admin_key=room.admin_key)
        with pytest.raises(Unauthorized):
            await engine.auctions.start_auction(room.id, "wrong")

        await engine.auctions.start_auction(room.id, room.admin_key)
        with pytest.raises(AuctionAlreadyRunning):
            await engine.auctions.start_auction(room.id, room.admin_key)

    run(scenario)


# ============ 出價 ============

def test_bid_updates_current_bid():
    async def scenario():
        engine = build_engine()
        room, alice, _, _ = await running_auction(engine)
        engine.clock.at(5)
        current = await engine.auctions.place_bid(room.id, alice.id, 10)

        assert current.current_auction.current_bid == 10
        assert current.current_auction.current_bidder_player_id == alice.id
        assert current.current_auction.end_time == T0 + timedelta(seconds=30)
        assert engine.messenger.states(room.id)[-1]["currentAuction"]["currentBid"] == 10

    run(scenario)


def test_rejected_bid_is_not_broadcast():
    async def scenario():
        engine = build_engine()
        room, alice, bob, _ = await running_auction(engine)
        await engine.auctions.place_bid(room.id, alice.id, 10)
        published = len(engine.messenger.published)

        with pytest.raises(BidRejected) as exc:
            await engine.auctions.place_bid(room.id, bob.id, 10)
        assert exc.value.code == BELOW_MINIMUM
        assert exc.value.minimum == 11

        with pytest.raises(BidRejected) as exc:
            await engine.auctions.place_bid(room.id, bob.id, 101)
        assert exc.value.code == INSUFFICIENT_BUDGET

        assert len(engine.messenger.published) == published
        current = await engine.rooms.get_room(room.id)
        assert current.current_auction.current_bidder_player_id == alice.id

    run(scenario)


def test_late_bid_before_timer_fires_is_rejected():
    async def scenario():
        engine = build_engine()
        room, alice, _, _ = await running_auction(engine)
        engine.clock.at(31)

        with pytest.raises(BidRejected) as exc:
            await engine.auctions.place_bid(room.id, alice.id, 10)
        assert exc.value.code == AUCTION_ENDED

    run(scenario)


def test_anti_snipe_extends_by_exactly_five_seconds():
    async def scenario():
        engine = build_engine()
        room, alice, _, _ = await running_auction(engine)
        timer_before = engine.timer._tasks[room.id]

        engine.clock.at(29)
        current = await engine.auctions.place_bid(room.id, alice.id, 5)

        assert current.current_auction.end_time == T0 + timedelta(seconds=35)
        assert engine.timer._tasks[room.id] is not timer_before
        assert engine.timer.is_running(room.id)

    run(scenario)


def test_next_tick_after_extension_counts_from_new_deadline():
    async def scenario():
        engine = build_engine(tick_interval=0.05)
        room, alice, _, _ = await running_auction(engine)

        engine.clock.at(29)
        await engine.auctions.place_bid(room.id, alice.id, 5)
        seen = len(engine.messenger.ticks(room.id))

        for _ in range(100):
            await asyncio.sleep(0.01)
            if len(engine.messenger.ticks(room.id)) > seen:
                break
        assert engine.messenger.ticks(room.id)[seen] == 5

    run(scenario)


def test_simultaneous_equal_bids_accept_exactly_one():
    async def scenario():
        engine = build_engine()
        room, alice, bob, _ = await running_auction(engine)

        results = await asyncio.gather(
            engine.auctions.place_bid(room.id, alice.id, 10),
            engine.auctions.place_bid(room.id, bob.id, 10),
            return_exceptions=True,
        )
        rejected = [r for r in results if isinstance(r, BidRejected)]
        assert len(rejected) == 1
        assert rejected[0].code == BELOW_MINIMUM

        current = await engine.rooms.get_room(room.id)
        assert current.current_auction.current_bid == 10
        winner = alice.id if results[0] is not rejected[0] else bob.id
        assert current.current_auction.current_bidder_player_id == winner

    run(scenario)


def test_superseded_expiry_does_not_resolve():
    async def scenario():
        engine = build_engine()
        room, alice, _, ids = await running_auction(engine)
        await engine.auctions.place_bid(room.id, alice.id, 5)

        await engine.auctions.on_timer_expired(room.id, ids["Colby"])

        current = await engine.rooms.get_room(room.id)
        assert current.current_auction.status == AuctionStatus.RUNNING

    run(scenario)


# ============ 結算 ============

def test_full_auction_with_anti_snipe():
    async def scenario():
        engine = build_engine()
        room, alice, bob, ids = await running_auction(engine)
        colby = ids["Colby"]

        engine.clock.at(5)
        await engine.auctions.place_bid(room.id, bob.id, 20)
        engine.clock.at(29)
        extended = await engine.auctions.place_bid(room.id, alice.id, 25)
        assert extended.current_auction.end_time == T0 + timedelta(seconds=35)

        engine.clock.at(35)
        engine.timer.cancel(room.id)
        await engine.auctions.on_timer_expired(room.id, colby)

        current = await engine.rooms.get_room(room.id)
        winner = current.players[alice.id]
        assert winner.budget_remaining == 75
        assert winner.roster == [colby]
        assert current.players[bob.id].budget_remaining == 100
        assert current.contestants[colby].status == ContestantStatus.DRAFTED
        assert current.contestants[colby].drafted_price == 25
        assert current.contestants[colby].draft_order == 1
        assert current.nominator_player_id == alice.id
        assert current.current_auction.status == AuctionStatus.IDLE
        assert current.current_auction.contestant_id is None
        assert current.phase == RoomPhase.AUCTION

        last = engine.messenger.states(room.id)[-1]
        assert last["players"][alice.id]["budgetRemaining"] == 75
        assert last["nominatorPlayerId"] == alice.id

    run(scenario)


def test_winner_nominates_next():
    async def scenario():
        engine = build_engine()
        room, alice, bob, ids = await running_auction(engine)
        await engine.auctions.place_bid(room.id, alice.id, 5)
        await engine.auctions.resolve(room.id)

        with pytest.raises(Unauthorized):
            await engine.auctions.nominate(room.id, ids["Sandra"], player_id=bob.id)
        current = await engine.auctions.nominate(room.id, ids["Sandra"], player_id=alice.id)
        assert current.contestants[ids["Sandra"]].status == ContestantStatus.NOMINATED

    run(scenario)


def test_resolving_last_contestant_completes_draft():
    async def scenario():
        engine = build_engine()
        room, alice, _, ids = await running_auction(engine, contestants=("Colby",))
        await engine.auctions.place_bid(room.id, alice.id, 5)
        outcome = await engine.auctions.resolve(room.id)

        assert outcome.draft_complete
        assert (await engine.rooms.get_room(room.id)).phase == RoomPhase.COMPLETE
        assert not engine.timer.is_running(room.id)

    run(scenario)


def test_resolve_without_running_auction_is_noop():
    async def scenario():
        engine = build_engine()
        room, _, _, _ = await drafting_room(engine)
        published = len(engine.messenger.published)
        assert await engine.auctions.resolve(room.id) is None
        assert len(engine.messenger.published) == published

    run(scenario)


def test_persistence_failure_during_resolution_is_not_broadcast():
    async def scenario():
        engine = build_engine()
        room, alice, _, ids = await running_auction(engine)
        await engine.auctions.place_bid(room.id, alice.id, 5)
        engine.timer.cancel(room.id)
        published = len(engine.messenger.published)

        engine.repository.fail_saves = True
        await engine.auctions.on_timer_expired(room.id, ids["Colby"])

        assert len(engine.messenger.published) == published
        current = await engine.rooms.get_room(room.id)
        assert current.current_auction.status == AuctionStatus.RUNNING
        assert current.players[alice.id].budget_remaining == 100

        engine.repository.fail_saves = False
        outcome = await engine.auctions.resolve(room.id)
        assert outcome.winner_id == alice.id

    run(scenario)


def test_timer_expiry_resolves_on_its_own():
    async def scenario():
        engine = build_engine(tick_interval=0.01)
        room = await engine.rooms.create_room(cast("Colby", "Sandra"))
        await engine.rooms.update_settings(
            room.id, room.admin_key, SettingsPatch(timer_seconds=2)
        )
        await engine.rooms.join(room.id, "Alice")
        await engine.rooms.start_draft(room.id, room.admin_key)
        contestant_id = next(iter(room.contestants))
        await engine.auctions.nominate(room.id, contestant_id, admin_key=room.admin_key)
        await engine.auctions.start_auction(room.id, room.admin_key)

        for _ in range(100):
            await asyncio.sleep(0.01)
            current = await engine.rooms.get_room(room.id)
            if current.current_auction.status == AuctionStatus.IDLE:
                break

        assert current.current_auction.status == AuctionStatus.IDLE
        assert current.contestants[contestant_id].status == ContestantStatus.AVAILABLE
        assert engine.messenger.ticks(room.id) == [1, 0]
        assert not engine.timer.is_running(room.id)

    run(scenario)


def test_starting_budget_is_frozen_while_auction_runs():
    async def scenario():
        engine = build_engine()
        room, alice, _, _ = await running_auction(engine)
        await engine.auctions.place_bid(room.id, alice.id, 80)

        with pytest.raises(InvalidState):
            await engine.rooms.update_settings(room.id, room.admin_key, SettingsPatch(starting_budget=50))

        settings = await engine.rooms.update_settings(
            room.id, room.admin_key, SettingsPatch(starting_budget=100, min_increment=2)
        )
        assert settings.min_increment == 2
        current = await engine.rooms.get_room(room.id)
        assert current.players[alice.id].budget_remaining == 100

        await engine.auctions.resolve(room.id)
        await engine.rooms.update_settings(room.id, room.admin_key, SettingsPatch(starting_budget=150))
        assert (await engine.rooms.get_room(room.id)).players[alice.id].budget_remaining == 70

    run(scenario)
