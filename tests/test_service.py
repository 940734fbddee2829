import asyncio

import pytest

from holdem.errors import (
    AuthorizationError,
    PreconditionError,
    ResourceError,
    TableError,
    ValidationError,
)
from holdem.models import Stage
from holdem.service import TableService

from .helpers import FakeClock


async def seated_service(players: int = 3, seats: int = 6, stack: int = 1000) -> TableService:
    service = TableService(clock=FakeClock())
    await service.create_table("T-1", sb=5, bb=10, seats=seats)
    for number in range(1, players + 1):
        await service.join_seat("T-1", number, f"p{number}", stack, f"Player{number}")
    return service


def run(coro):
    return asyncio.run(coro)


def test_create_table_starts_idle_with_empty_seats():
    async def scenario():
        service = TableService()
        table = await service.create_table("T-1", sb=1, bb=2, variant="omaha_hi", seats=6, min_players=3)
        assert table.stage == Stage.IDLE
        assert sorted(table.seats) == [1, 2, 3, 4, 5, 6]
        assert all(not seat.occupied for seat in table.seats.values())
        assert table.config.min_players == 3
        with pytest.raises(ResourceError) as info:
            await service.create_table("T-1")
        assert info.value.code == "TABLE_EXISTS"

    run(scenario())


@pytest.mark.parametrize(
    "kwargs",
    [
        {"sb": 0},
        {"sb": 20, "bb": 10},
        {"seats": 1},
        {"seats": 11},
        {"min_players": 1},
        {"min_players": 7, "seats": 6},
        {"variant": "stud"},
        {"bb": "10"},
    ],
)
def test_create_table_rejects_bad_config(kwargs):
    async def scenario():
        with pytest.raises(ValidationError) as info:
            await TableService().create_table("T-1", **kwargs)
        assert info.value.code == "BAD_CONFIG"

    run(scenario())


def test_unknown_table_is_a_resource_error():
    async def scenario():
        service = TableService()
        with pytest.raises(ResourceError) as info:
            await service.start_hand("missing")
        assert info.value.code == "TABLE_NOT_FOUND"
        with pytest.raises(ValidationError):
            await service.start_hand("")

    run(scenario())


def test_min_players_gate_start_hand():
    async def scenario():
        service = TableService()
        await service.create_table("T-1", seats=4, min_players=3)
        await service.join_seat("T-1", 1, "p1", 100)
        await service.join_seat("T-1", 2, "p2", 100)
        with pytest.raises(PreconditionError) as info:
            await service.start_hand("T-1")
        assert info.value.code == "NOT_ENOUGH_PLAYERS"
        await service.join_seat("T-1", 4, "p4", 100)
        await service.start_hand("T-1")
        assert service.store.get("T-1").stage == Stage.PRE_FLOP

    run(scenario())


def test_player_action_checks_identity_of_seat_to_act():
    async def scenario():
        service = await seated_service()
        await service.start_hand("T-1", seed=1)
        with pytest.raises(AuthorizationError) as info:
            await service.player_action("T-1", "p2", "call")
        assert info.value.code == "NOT_YOUR_TURN"
        with pytest.raises(AuthorizationError):
            await service.player_action("T-1", "stranger", "call")
        events = await service.player_action("T-1", "p1", "CALL")
        assert events[0] == {"ev": "CALL", "seat": 1, "amount": 10, "all_in": False}

    run(scenario())


def test_player_action_validates_action_names():
    async def scenario():
        service = await seated_service()
        await service.start_hand("T-1", seed=1)
        with pytest.raises(ValidationError) as info:
            await service.player_action("T-1", "p1", "shove")
        assert info.value.code == "BAD_ACTION"
        with pytest.raises(ValidationError):
            await service.player_action("T-1", "p1", None)

    run(scenario())


def test_action_without_hand_is_precondition_error():
    async def scenario():
        service = await seated_service()
        with pytest.raises(PreconditionError) as info:
            await service.player_action("T-1", "p1", "check")
        assert info.value.code == "NO_ACTIVE_HAND"

    run(scenario())


def test_rejected_action_leaves_table_untouched():
    async def scenario():
        service = await seated_service()
        await service.start_hand("T-1", seed=5)
        before = service.store.get("T-1")
        version = service.store.version("T-1")

        with pytest.raises(TableError):
            await service.player_action("T-1", "p1", "raise", 15)
        with pytest.raises(TableError):
            await service.player_action("T-1", "p1", "check")

        after = service.store.get("T-1")
        assert service.store.version("T-1") == version
        assert after == before

    run(scenario())


def test_store_hands_out_copies():
    async def scenario():
        service = await seated_service()
        snapshot = service.store.get("T-1")
        snapshot.seats[1].stack = 0
        assert service.store.get("T-1").seats[1].stack == 1000

    run(scenario())


def test_seat_lifecycle_errors():
    async def scenario():
        service = await seated_service(players=2, seats=3)
        with pytest.raises(ResourceError) as info:
            await service.join_seat("T-1", 2, "p9", 100)
        assert info.value.code == "SEAT_OCCUPIED"
        with pytest.raises(ResourceError) as info:
            await service.join_seat("T-1", 9, "p9", 100)
        assert info.value.code == "SEAT_NOT_FOUND"
        with pytest.raises(PreconditionError) as info:
            await service.join_seat("T-1", 3, "p1", 100)
        assert info.value.code == "ALREADY_SEATED"
        with pytest.raises(AuthorizationError) as info:
            await service.leave_seat("T-1", 1, "p2")
        assert info.value.code == "NOT_YOUR_SEAT"

        assert await service.leave_seat("T-1", 2, "p2") == 1000
        table = service.store.get("T-1")
        seat = table.seats[2]
        assert not seat.occupied
        assert seat.stack == 0 and seat.hole_cards == [] and not seat.has_folded

    run(scenario())


def test_reveal_request_requires_ownership():
    async def scenario():
        service = await seated_service(players=2)
        await service.start_hand("T-1", seed=3)
        with pytest.raises(AuthorizationError):
            await service.reveal_request("T-1", 1, "p2")
        view = await service.reveal_request("T-1", 1, "p1")
        seat_one = next(entry for entry in view["seats"] if entry["seat"] == 1)
        assert len(seat_one["revealed"]) == 2

    run(scenario())


def test_view_shows_only_callers_hole_cards():
    async def scenario():
        service = await seated_service(players=2)
        await service.start_hand("T-1", seed=3)
        table = service.store.get("T-1")

        mine = service.view("T-1", "p2")
        assert mine["you"]["hole"] == [card.label for card in table.seats[2].hole_cards]
        text = repr(mine)
        for card in table.seats[1].hole_cards:
            assert f"'{card.label}'" not in text
        assert "you" not in service.view("T-1")
        assert "you" not in service.view("T-1", "spectator")

    run(scenario())


def test_concurrent_actions_serialize_per_table():
    async def scenario():
        service = await seated_service(players=2)
        await service.start_hand("T-1", seed=9)
        results = await asyncio.gather(
            service.player_action("T-1", "p1", "call"),
            service.player_action("T-1", "p1", "call"),
            return_exceptions=True,
        )
        errors = [result for result in results if isinstance(result, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], TableError)
        table = service.store.get("T-1")
        assert table.stage == Stage.FLOP
        assert table.pot == 20

    run(scenario())
