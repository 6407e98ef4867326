# chain/entropy.py
import asyncio
import logging
from dataclasses import dataclass

from asgiref.sync import sync_to_async

from .exceptions import ChainError, EntropyTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntropyResult:
    sequence_number: int
    entropy_value: int


class EntropyRequester:
    """
    Pays the entropy fee, requests randomness for a round and waits for the
    provider callback to land in ``getRound(roundId).entropyRandom``.

    The whole wait (reveal-delay blocks + callback polling) is bounded by
    ``max_wait``. A timeout raises EntropyTimeout; the transaction itself is
    never cancelled, the caller simply stops waiting for it.
    """

    def __init__(
        self,
        chain,
        poll_interval=3.0,
        max_wait=120.0,
        reveal_delay_blocks=2,
        block_poll_interval=1.0,
        sleep=asyncio.sleep,
    ):
        self.chain = chain
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.reveal_delay_blocks = reveal_delay_blocks
        self.block_poll_interval = block_poll_interval
        self._sleep = sleep

    async def _run(self, fn, *args):
        return await sync_to_async(fn, thread_sensitive=False)(*args)

    async def request(self, round_id: int) -> EntropyResult:
        fee = await self._run(self.chain.entropy_fee)
        logger.info("Round %s: requesting randomness (fee %s wei)", round_id, fee)

        await self._run(self.chain.request_randomness, round_id, fee)
        requested = await self._run(self.chain.get_round, round_id)
        sequence_number = requested.sequence_number
        if not sequence_number:
            raise ChainError(f"Round {round_id}: no entropy sequence number after request")

        logger.info("Round %s: sequence number %s", round_id, sequence_number)

        try:
            entropy_value = await asyncio.wait_for(
                self._await_callback(round_id), timeout=self.max_wait
            )
        except asyncio.TimeoutError:
            raise EntropyTimeout(round_id, self.max_wait) from None

        return EntropyResult(sequence_number=sequence_number, entropy_value=entropy_value)

    async def _await_callback(self, round_id: int) -> int:
        if self.reveal_delay_blocks:
            current = await self._run(self.chain.block_number)
            target = current + self.reveal_delay_blocks
            logger.debug("Round %s: waiting for block %s (current %s)", round_id, target, current)
            while await self._run(self.chain.block_number) < target:
                await self._sleep(self.block_poll_interval)

        waited = 0.0
        while True:
            await self._sleep(self.poll_interval)
            waited += self.poll_interval
            try:
                onchain = await self._run(self.chain.get_round, round_id)
            except ChainError as e:
                # a flaky read is not a failed callback; keep polling
                logger.warning("Round %s: entropy poll failed: %s", round_id, e)
                continue

            if onchain.entropy_value:
                logger.info("Round %s: entropy received after %.0fs", round_id, waited)
                return onchain.entropy_value

            logger.debug("Round %s: waiting for entropy callback (%.0fs/%.0fs)", round_id, waited, self.max_wait)
