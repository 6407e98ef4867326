from datetime import datetime, timezone
from decimal import Decimal

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from crash.models import CashOut, GameRound
from crash.state import RoundStatus

from .fakes import WALLET_A

pytestmark = pytest.mark.django_db

SEED = "5f2c" * 16


@pytest.fixture
def client():
    return APIClient()


def _round(round_id, status=RoundStatus.SETTLED, **kwargs):
    defaults = {
        "chain_id": 10143,
        "protocol_version": 2,
        "server_seed_hash": "0x" + "ab" * 32,
        "server_seed": SEED,
        "final_multiplier": Decimal("2.50"),
        "status": status.value,
    }
    defaults.update(kwargs)
    return GameRound.objects.create(round_id=round_id, **defaults)


class TestRecentRounds:
    def test_only_settled_newest_first(self, client):
        _round(1)
        _round(2, status=RoundStatus.RANDOM_READY, server_seed="")
        _round(3)

        res = client.get(reverse("recent-rounds"))

        assert res.status_code == 200
        assert [r["round_id"] for r in res.data] == [3, 1]
        assert res.data[0]["server_seed"] == SEED
        assert res.data[0]["final_multiplier"] == "2.50"


class TestRoundDetail:
    def test_includes_cash_outs(self, client):
        game_round = _round(42)
        CashOut.objects.create(
            round=game_round,
            wallet=WALLET_A,
            multiplier=Decimal("1.80"),
            payout_estimate=Decimal("88.65"),
            received_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        )

        res = client.get(reverse("round-detail", args=[42]))

        assert res.status_code == 200
        cash_out, = res.data["cash_outs"]
        assert cash_out["wallet"] == WALLET_A
        assert cash_out["multiplier"] == "1.80"

    def test_seed_hidden_until_revealed(self, client):
        # stored by mistake before reveal; the API still must not leak it
        _round(43, status=RoundStatus.RANDOM_READY)

        res = client.get(reverse("round-detail", args=[43]))

        assert res.data["server_seed"] is None
        assert res.data["server_seed_hash"] == "0x" + "ab" * 32

    def test_unknown_round(self, client):
        assert client.get(reverse("round-detail", args=[999])).status_code == 404


class TestVerifyRound:
    def test_valid_round(self, client, golden):
        case = golden[0]
        res = client.post(reverse("verify-round"), {
            "roundId": case["roundId"],
            "entropyValue": case["entropyValue"],
            "serverSeed": case["serverSeed"],
            "chainId": case["chainId"],
            "serverSeedHash": case["commitment"],
            "finalMultiplier": "11.33",
            "protocolVersion": 2,
        }, format="json")

        assert res.status_code == 200
        assert res.data["valid"] is True
        assert res.data["commitmentValid"] is True
        assert res.data["finalMultiplier"] == 11.33
        assert res.data["protocolVersion"] == 2

    def test_mismatched_multiplier(self, client, golden):
        case = golden[1]
        res = client.post(reverse("verify-round"), {
            "roundId": case["roundId"],
            "entropyValue": case["entropyValue"],
            "serverSeed": case["serverSeed"],
            "chainId": case["chainId"],
            "finalMultiplier": "5.00",
            "protocolVersion": 2,
        }, format="json")

        assert res.status_code == 200
        assert res.data["valid"] is False
        assert res.data["commitmentValid"] is None
        assert res.data["finalMultiplier"] == 1.09

    def test_protocol_defaults_to_settings(self, client, golden, settings):
        settings.CRASH_ENGINE = {**settings.CRASH_ENGINE, "PROTOCOL_VERSION": 1}
        case = golden[0]
        res = client.post(reverse("verify-round"), {
            "roundId": case["roundId"],
            "entropyValue": case["entropyValue"],
            "serverSeed": case["serverSeed"],
            "chainId": case["chainId"],
        }, format="json")

        assert res.data["protocolVersion"] == 1
        assert res.data["finalMultiplier"] == 1.0

    @pytest.mark.parametrize("payload", [
        {"roundId": 1, "entropyValue": "not-a-number", "serverSeed": "x", "chainId": 1},
        {"roundId": 1, "entropyValue": hex(2 ** 256), "serverSeed": "x", "chainId": 1},
        {"roundId": 1, "entropyValue": "5", "serverSeed": "x", "chainId": 1, "protocolVersion": 7},
        {"entropyValue": "5", "serverSeed": "x", "chainId": 1},
    ])
    def test_bad_input(self, client, payload):
        res = client.post(reverse("verify-round"), payload, format="json")
        assert res.status_code == 400
