from unittest.mock import patch

import pytest

from crash.broadcast import GROUP_NAME, BroadcastHub
from crash.curve import Tick, TickPhase
from crash.messages import (
    CashOutAck,
    CashOutResponse,
    ChatMessage,
    StatusMessage,
    UpdateMessage,
    bar_date,
)
from crash.state import GamePhase

from .fakes import WALLET_A

TICK = Tick(index=0, open=1.0, high=1.01, low=1.0, close=1.01, value=101000, phase=TickPhase.RUNNING, time=1_700_000_000.0)


@pytest.fixture
def hub(layer):
    return BroadcastHub(layer)


class TestFanOut:
    async def test_events_keep_emission_order(self, hub, layer):
        await hub.status(StatusMessage("game_started", round_id=3))
        await hub.update(UpdateMessage.opening(TICK))
        await hub.update(UpdateMessage.from_tick(TICK))
        await hub.cash_out_ack(CashOutAck(3, WALLET_A, 1.01))

        assert [group for group, _ in layer.group_messages] == [GROUP_NAME] * 4
        assert [m["type"] for _, m in layer.group_messages] == [
            "crash.status", "crash.update", "crash.update", "crash.cashout",
        ]

    async def test_update_stamped_at_send_time(self, hub, layer):
        with patch("crash.broadcast.time.time", return_value=1_700_000_123.5):
            await hub.update(UpdateMessage.from_tick(TICK))

        update, = layer.payloads("crash.update")
        assert update["timestamp"] == 1_700_000_123.5
        assert update["currentValue"] == 101000
        assert update["bar"] == {
            "open": 1.0, "high": 1.01, "low": 1.0, "close": 1.01,
            "time": {"year": 2023, "month": 11, "day": 14},
        }
        assert update["nextGameNoMoreBetsAt"] == 0
        assert hub.state.latest_update is update

    async def test_status_drops_empty_fields(self, hub, layer):
        await hub.status(StatusMessage("prepared", round_id=3, message="Game data prepared. Starting in 5 seconds..."))

        assert layer.payloads("crash.status") == [{
            "type": "status",
            "status": "prepared",
            "roundId": 3,
            "message": "Game data prepared. Starting in 5 seconds...",
        }]

    async def test_chat_kept_in_history(self, hub, layer):
        chat = ChatMessage.create("0xABCDEF0000000000000000000000000000001234", "hello")

        await hub.chat(chat)

        payload, = layer.payloads("crash.chat")
        assert payload["address"] == "0xabcdef0000000000000000000000000000001234"
        assert payload["user"] == "0xAB...1234"
        assert list(hub.state.chat_messages) == [payload]


class TestDirectSends:
    async def test_snapshot_goes_to_one_channel(self, hub, layer):
        hub.state.reset_for(8, GamePhase.BETTING)
        hub.state.betting_close_time = 1_700_000_020

        await hub.send_snapshot("client.9")

        assert layer.group_messages == []
        (channel, message), = layer.direct_messages
        assert channel == "client.9"
        assert message["type"] == "crash.snapshot"
        assert message["payload"]["roundId"] == 8
        assert message["payload"]["gameState"] == "betting"
        assert message["payload"]["bettingCloseTime"] == 1_700_000_020

    async def test_cash_out_response(self, hub, layer):
        await hub.send_cash_out_response("client.9", CashOutResponse(False, error="No bet found"))

        (channel, message), = layer.direct_messages
        assert message == {
            "type": "crash.cashout_response",
            "payload": {"type": "cash_out_response", "success": False, "error": "No bet found"},
        }


class TestSnapshotState:
    def test_recent_rounds_capped(self, hub):
        for round_id in range(1, 10):
            hub.state.push_result(round_id, 1.5)
        rounds = hub.snapshot().to_message()["recentRounds"]
        assert [r["roundId"] for r in rounds] == [4, 5, 6, 7, 8, 9]

    def test_reset_clears_round_fields(self, hub):
        hub.state.current_multiplier = 4.2
        hub.state.latest_update = {"type": "update"}
        hub.state.chat_messages.append({"message": "kept"})

        hub.state.reset_for(9, GamePhase.PREPARING)

        snapshot = hub.snapshot().to_message()
        assert snapshot["currentMultiplier"] == 1.0
        assert snapshot["latestUpdate"] is None
        assert snapshot["recentChatMessages"] == [{"message": "kept"}]


def test_bar_date_is_utc():
    # 2024-01-01 00:30 UTC is still Dec 31 in the Americas
    assert bar_date(1_704_069_000) == {"year": 2024, "month": 1, "day": 1}
