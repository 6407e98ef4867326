from django.conf import settings
from rest_framework import serializers

from .models import CashOut, GameRound
from .provably_fair import DEFAULT_PROTOCOL_VERSION, RANDOM_DENOMINATORS


class CashOutSerializer(serializers.ModelSerializer):
    class Meta:
        model = CashOut
        fields = [
            "wallet",
            "multiplier",
            "payout_estimate",
            "verified",
            "received_at",
        ]


class GameRoundSerializer(serializers.ModelSerializer):
    server_seed = serializers.SerializerMethodField()

    class Meta:
        model = GameRound
        fields = [
            "round_id",
            "chain_id",
            "protocol_version",
            "server_seed_hash",
            "server_seed",
            "sequence_number",
            "entropy_value",
            "final_multiplier",
            "status",
            "tick_interval_ms",
            "reveal_tx_hash",
            "settle_tx_hash",
            "started_at",
            "settled_at",
        ]

    def get_server_seed(self, obj):
        return obj.server_seed if obj.is_revealed else None


class GameRoundDetailSerializer(GameRoundSerializer):
    cash_outs = CashOutSerializer(many=True, read_only=True)

    class Meta(GameRoundSerializer.Meta):
        fields = GameRoundSerializer.Meta.fields + ["cash_outs"]


class VerifyRoundSerializer(serializers.Serializer):
    roundId = serializers.IntegerField(min_value=0)
    entropyValue = serializers.CharField()
    serverSeed = serializers.CharField(trim_whitespace=False)
    chainId = serializers.IntegerField(min_value=0)
    serverSeedHash = serializers.CharField(required=False, allow_blank=True)
    finalMultiplier = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    protocolVersion = serializers.ChoiceField(choices=sorted(RANDOM_DENOMINATORS), required=False)

    def validate_entropyValue(self, value):
        # decimal or 0x-prefixed hex, as read from getRound()
        try:
            number = int(value, 0)
        except ValueError:
            raise serializers.ValidationError("Entropy value must be a decimal or 0x-prefixed integer.")
        if number < 0 or number >= 2 ** 256:
            raise serializers.ValidationError("Entropy value must fit in a uint256.")
        return number

    def validate(self, attrs):
        attrs.setdefault("protocolVersion", settings.CRASH_ENGINE.get("PROTOCOL_VERSION", DEFAULT_PROTOCOL_VERSION))
        return attrs
