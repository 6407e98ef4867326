"""
Round orchestration.

One CrashEngine drives one round at a time through

    create -> request entropy -> await entropy -> betting -> prepared
           -> running (ticks) -> reveal -> settle -> batch cash-outs

while a second task serves the engine's inbox channel (snapshots for new
connections, chat, cash-out claims) so slow chain calls in the round loop
never hold up the websocket side.
"""
import asyncio
import logging
import time
from dataclasses import dataclass

from asgiref.sync import sync_to_async
from django.conf import settings
from django.db import DatabaseError

from chain.exceptions import ChainError

from .archive import RoundArchive
from .broadcast import BroadcastHub
from .cashout import CashOutValidator
from .curve import generate_crash_game
from .exceptions import CASH_OUT_FAILED, CashOutRejected, CommitmentMismatch
from .messages import (
    STATUS_BETTING_OPEN,
    STATUS_GAME_STARTED,
    STATUS_PREPARED,
    STATUS_PREPARING_GAME,
    STATUS_REVEALED,
    CashOutAck,
    CashOutRequest,
    CashOutResponse,
    ChatMessage,
    StatusMessage,
    UpdateMessage,
    clean_chat_text,
)
from .provably_fair import DEFAULT_PROTOCOL_VERSION, assert_commitment, commitment_hash, generate_server_seed
from .settlement import SettlementBatcher
from .state import ActiveRound, GamePhase, RoundStatus

logger = logging.getLogger(__name__)

ENGINE_CHANNEL = "crash-engine"


@dataclass(frozen=True)
class EngineConfig:
    protocol_version: int = DEFAULT_PROTOCOL_VERSION
    betting_duration_ms: int = 20000
    prepared_delay_ms: int = 5000
    tick_interval_ms: int = 100
    reveal_delay: float = 2.0
    next_round_delay: float = 2.0
    round_retry_delay: float = 5.0
    entropy_retry_delay: float = 3.0
    cash_out_batch_size: int = 15

    @classmethod
    def from_settings(cls):
        cfg = settings.CRASH_ENGINE
        return cls(
            protocol_version=cfg.get("PROTOCOL_VERSION", DEFAULT_PROTOCOL_VERSION),
            betting_duration_ms=cfg.get("BETTING_DURATION_MS", 20000),
            prepared_delay_ms=cfg.get("PREPARED_DELAY_MS", 5000),
            tick_interval_ms=cfg.get("TICK_INTERVAL_MS", 100),
            reveal_delay=cfg.get("REVEAL_DELAY", 2.0),
            next_round_delay=cfg.get("NEXT_ROUND_DELAY", 2.0),
            round_retry_delay=cfg.get("ROUND_RETRY_DELAY", 5.0),
            entropy_retry_delay=cfg.get("ENTROPY_RETRY_DELAY", 3.0),
            cash_out_batch_size=cfg.get("CASHOUT_BATCH_SIZE", 15),
        )


class CrashEngine:
    def __init__(
        self,
        chain,
        entropy,
        channel_layer,
        config: EngineConfig = None,
        archive=None,
        sleep=asyncio.sleep,
        clock=time.time,
    ):
        self.chain = chain
        self.entropy = entropy
        self.channel_layer = channel_layer
        self.config = config or EngineConfig()
        self.archive = archive or RoundArchive()
        self.hub = BroadcastHub(channel_layer)
        self.validator = CashOutValidator(self, chain)
        self.batcher = SettlementBatcher(chain, batch_size=self.config.cash_out_batch_size)
        self.active_round = None
        self._sleep = sleep
        self._clock = clock
        self._running = False
        self._tasks = set()

    async def _chain(self, fn, *args):
        return await sync_to_async(fn, thread_sensitive=False)(*args)

    # ---------------------------------------------------
    # ROUND LOOP
    # ---------------------------------------------------
    async def run(self):
        """Round loop and inbox together, until stopped or cancelled"""
        inbox = asyncio.create_task(self.serve_inbox())
        try:
            await self.run_forever()
        finally:
            inbox.cancel()
            await asyncio.gather(inbox, return_exceptions=True)

    async def run_forever(self):
        self._running = True
        while self._running:
            try:
                await self.run_round()
            except CommitmentMismatch as e:
                logger.critical("Integrity failure, round %s not revealed: %s", e.round_id, e)
                self._drop_active_round()
                await self._sleep(self.config.round_retry_delay)
            except Exception:
                logger.exception("Round failed, retrying in %ss", self.config.round_retry_delay)
                self._drop_active_round()
                await self._sleep(self.config.round_retry_delay)

    def stop(self):
        self._running = False

    def _drop_active_round(self):
        if self.active_round is not None:
            self.active_round.accepting = False
        self.active_round = None
        self.hub.state.phase = GamePhase.PREPARING

    async def _open_round(self, server_seed, commitment) -> ActiveRound:
        round_id = await self._chain(self.chain.create_round, commitment)
        active = ActiveRound(
            round_id=round_id,
            server_seed=server_seed,
            commitment=commitment,
            chain_id=self.chain.chain_id,
            protocol_version=self.config.protocol_version,
            tick_interval_ms=self.config.tick_interval_ms,
        )
        self.active_round = active
        self.hub.state.reset_for(round_id, GamePhase.PREPARING)
        logger.info("Round %s created, commitment %s", round_id, commitment)

        await self.hub.status(StatusMessage(
            STATUS_PREPARING_GAME, round_id=round_id, message="Preparing new game...",
        ))
        await self.archive.save_round(active)
        return active

    async def _await_entropy(self, active, server_seed, commitment) -> ActiveRound:
        """
        Blocks until some round has entropy. A round whose entropy never
        arrives is abandoned and replaced by a fresh on-chain round carrying
        the same commitment; the old transaction is left to land or not.
        """
        while True:
            active.advance(RoundStatus.RANDOM_REQUESTED)
            try:
                result = await self.entropy.request(active.round_id)
            except ChainError as e:
                logger.warning("Round %s: entropy failed (%s), starting a replacement round", active.round_id, e)
                active.advance(RoundStatus.ABANDONED)
                active.accepting = False
                await self.archive.save_round(active)
                await self._sleep(self.config.entropy_retry_delay)
                active = await self._open_round(server_seed, commitment)
                continue

            active.sequence_number = result.sequence_number
            active.entropy_value = result.entropy_value
            active.advance(RoundStatus.RANDOM_READY)
            await self.archive.save_round(active)
            return active

    async def run_round(self):
        cfg = self.config
        state = self.hub.state

        server_seed = generate_server_seed()
        commitment = commitment_hash(server_seed)

        active = await self._open_round(server_seed, commitment)
        active = await self._await_entropy(active, server_seed, commitment)
        round_id = active.round_id

        betting_close_time = int(self._clock() + cfg.betting_duration_ms / 1000)
        start_timestamp = betting_close_time + cfg.prepared_delay_ms / 1000

        game = generate_crash_game(
            round_id,
            active.entropy_value,
            server_seed,
            active.chain_id,
            start_timestamp,
            cfg.tick_interval_ms,
            cfg.protocol_version,
        )
        final = game.final_multiplier
        logger.info("Round %s: %s ticks generated", round_id, len(game.ticks))

        # betting
        active.phase = GamePhase.BETTING
        state.phase = GamePhase.BETTING
        state.betting_close_time = betting_close_time
        await self.hub.status(StatusMessage(
            STATUS_BETTING_OPEN, round_id=round_id, betting_close_time=betting_close_time,
        ))
        await self._sleep(max(0.0, betting_close_time - self._clock()))

        # prepared
        active.phase = GamePhase.PREPARED
        state.phase = GamePhase.PREPARED
        state.betting_close_time = None
        await self.hub.status(StatusMessage(
            STATUS_PREPARED,
            round_id=round_id,
            message=f"Game data prepared. Starting in {cfg.prepared_delay_ms // 1000} seconds...",
        ))
        await self._sleep(cfg.prepared_delay_ms / 1000)

        # running
        active.started_at = self._clock()
        active.current_multiplier = 1.00
        active.phase = GamePhase.RUNNING
        state.phase = GamePhase.RUNNING
        state.current_multiplier = 1.00
        await self.hub.status(StatusMessage(STATUS_GAME_STARTED, round_id=round_id))
        await self.hub.update(UpdateMessage.opening(game.ticks[0]))

        for tick in game.ticks:
            if tick.is_crash:
                active.final_multiplier = final
                active.current_multiplier = final
                active.phase = GamePhase.ENDED
                state.current_multiplier = final
                state.phase = GamePhase.ENDED
                await self.hub.update(UpdateMessage.from_tick(tick))
                logger.info("Round %s: crash at %.2fx", round_id, final)
                break

            # cash-outs are judged against this value from here on
            active.current_multiplier = tick.close
            state.current_multiplier = tick.close
            await self.hub.update(UpdateMessage.from_tick(tick))
            await self._sleep(cfg.tick_interval_ms / 1000)

        await self._sleep(cfg.reveal_delay)

        # no cash-out may be appended once settlement has the list
        async with active.lock:
            active.accepting = False
        records = active.records()

        assert_commitment(server_seed, commitment, round_id)
        reveal_tx = await self._chain(self.chain.reveal_server_seed, round_id, server_seed)
        active.advance(RoundStatus.SEED_REVEALED)
        await self.archive.save_round(active, reveal_tx_hash=reveal_tx)
        logger.info("Round %s: server seed revealed %s", round_id, self.chain.tx_url(reveal_tx))

        settle_tx = await self._chain(self.chain.settle_round, round_id, final, server_seed)
        logger.info("Round %s: settled at %.2fx %s", round_id, final, self.chain.tx_url(settle_tx))
        state.push_result(round_id, final)

        await self.batcher.settle(round_id, records)

        active.advance(RoundStatus.SETTLED)
        await self.archive.save_round(active, reveal_tx_hash=reveal_tx, settle_tx_hash=settle_tx)
        await self.hub.status(StatusMessage(
            STATUS_REVEALED, round_id=round_id, server_seed=server_seed, tx_hash=reveal_tx,
        ))
        self.active_round = None

        await self._sleep(cfg.next_round_delay)
        return game

    # ---------------------------------------------------
    # INBOX
    # ---------------------------------------------------
    async def serve_inbox(self):
        while True:
            message = await self.channel_layer.receive(ENGINE_CHANNEL)
            try:
                await self.dispatch(message)
            except Exception:
                logger.exception("Engine message %s failed", message.get("type"))

    async def dispatch(self, message):
        kind = message.get("type")

        if kind == "engine.snapshot":
            await self.hub.send_snapshot(message["reply_channel"])
        elif kind == "engine.chat":
            await self.post_chat(message.get("address"), message.get("message"))
        elif kind == "engine.cashout":
            request = CashOutRequest(
                round_id=message.get("roundId"),
                multiplier=message.get("multiplier"),
                wallet=message.get("walletAddress"),
            )
            active = self.active_round
            received = active.current_multiplier if active is not None else None
            task = asyncio.create_task(
                self.handle_cash_out(message["reply_channel"], request, received)
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.warning("Unknown engine message type: %s", kind)

    async def handle_cash_out(self, reply_channel, request: CashOutRequest, received_multiplier=None):
        active = self.active_round
        try:
            accepted = await self.validator.request_cash_out(
                request.round_id, request.wallet, request.multiplier, received_multiplier,
            )
        except CashOutRejected as e:
            logger.info("Cash-out rejected for %s (%s): %s", request.wallet, e.reason.value, e.detail)
            await self.hub.send_cash_out_response(reply_channel, CashOutResponse(False, error=e.message))
            return None
        except Exception:
            # the client still gets an answer; the round carries on
            logger.exception("Cash-out for %s in round %s failed", request.wallet, request.round_id)
            await self.hub.send_cash_out_response(reply_channel, CashOutResponse(False, error=CASH_OUT_FAILED))
            return None

        try:
            await self.archive.record_cash_out(active, accepted.record)
        except DatabaseError:
            logger.exception("Round %s: cash-out for %s recorded but not archived", accepted.round_id, accepted.wallet)

        await self.hub.send_cash_out_response(reply_channel, CashOutResponse(
            True,
            round_id=accepted.round_id,
            multiplier=accepted.multiplier,
            payout=float(accepted.payout),
        ))
        await self.hub.cash_out_ack(CashOutAck(accepted.round_id, accepted.wallet, accepted.multiplier))
        return accepted

    async def post_chat(self, address, text):
        text = clean_chat_text(text)
        if not address or not text:
            return None
        chat = ChatMessage.create(address, text)
        await self.hub.chat(chat)
        return chat
