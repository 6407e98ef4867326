# crash/admin.py
from django.contrib import admin
from .models import GameRound, CashOut


class CashOutInline(admin.TabularInline):
    model = CashOut
    extra = 0
    readonly_fields = ("wallet", "multiplier", "payout_estimate", "verified", "received_at")


@admin.register(GameRound)
class GameRoundAdmin(admin.ModelAdmin):
    list_display = ("round_id", "chain_id", "status", "final_multiplier", "protocol_version", "started_at", "settled_at")
    list_filter = ("status", "chain_id", "protocol_version")
    search_fields = ("round_id", "server_seed_hash", "reveal_tx_hash", "settle_tx_hash")
    readonly_fields = ("server_seed_hash", "server_seed", "sequence_number", "entropy_value", "created_at")
    inlines = [CashOutInline]


@admin.register(CashOut)
class CashOutAdmin(admin.ModelAdmin):
    list_display = ("round", "wallet", "multiplier", "payout_estimate", "verified", "received_at")
    search_fields = ("wallet",)
