from rest_framework import generics, permissions, views, response

from .curve import verify_round
from .models import GameRound
from .serializers import GameRoundDetailSerializer, GameRoundSerializer, VerifyRoundSerializer
from .state import RoundStatus


class RecentRoundsView(generics.ListAPIView):
    serializer_class = GameRoundSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        return GameRound.objects.filter(status=RoundStatus.SETTLED.value).order_by("-round_id")[:50]


class RoundDetailView(generics.RetrieveAPIView):
    serializer_class = GameRoundDetailSerializer
    permission_classes = [permissions.AllowAny]
    queryset = GameRound.objects.prefetch_related("cash_outs")
    lookup_field = "round_id"


class VerifyRoundView(views.APIView):
    """
    Recomputes a round's crash point from its public inputs.

    Anyone holding the revealed seed can do the same offline; this endpoint
    just saves them the keccak plumbing.
    """

    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = VerifyRoundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        claimed = data.get("finalMultiplier")
        result = verify_round(
            round_id=data["roundId"],
            entropy_value=data["entropyValue"],
            server_seed=data["serverSeed"],
            chain_id=data["chainId"],
            server_seed_hash=data.get("serverSeedHash") or None,
            final_multiplier=float(claimed) if claimed is not None else None,
            protocol_version=data["protocolVersion"],
        )
        return response.Response({
            "valid": result.valid,
            "commitmentValid": result.commitment_valid,
            "finalMultiplier": result.final_multiplier,
            "rawMultiplier": result.raw_multiplier,
            "protocolVersion": data["protocolVersion"],
        })
