import asyncio

import pytest

from chain.client import OnChainRound
from chain.entropy import EntropyRequester, EntropyResult
from chain.exceptions import ChainError, EntropyTimeout


def _round(sequence_number=5, entropy_value=0):
    return OnChainRound("0x" + "ab" * 32, "", sequence_number, entropy_value, 1)


class ScriptedChain:
    """Returns getRound / blockNumber answers in order; the last one repeats."""

    def __init__(self, rounds, blocks=(100,)):
        self.rounds = list(rounds)
        self.blocks = list(blocks)
        self.requests = []

    def entropy_fee(self):
        return 7

    def request_randomness(self, round_id, fee):
        self.requests.append((round_id, fee))
        return "0xrequest"

    def _next(self, answers):
        answer = answers.pop(0) if len(answers) > 1 else answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def get_round(self, round_id):
        return self._next(self.rounds)

    def block_number(self):
        return self._next(self.blocks)


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class TestEntropyRequest:
    async def test_waits_for_blocks_then_callback(self):
        chain = ScriptedChain(
            rounds=[_round(), _round(), _round(entropy_value=99)],
            blocks=[100, 100, 101, 102],
        )
        sleep = SleepRecorder()
        requester = EntropyRequester(chain, reveal_delay_blocks=2, sleep=sleep)

        result = await requester.request(42)

        assert result == EntropyResult(sequence_number=5, entropy_value=99)
        assert chain.requests == [(42, 7)]
        # two block polls, then two callback polls
        assert sleep.calls == [1.0, 1.0, 3.0, 3.0]

    async def test_flaky_poll_keeps_waiting(self, caplog):
        chain = ScriptedChain(rounds=[_round(), ChainError("getRound failed"), _round(entropy_value=1)])
        requester = EntropyRequester(chain, reveal_delay_blocks=0, sleep=SleepRecorder())

        result = await requester.request(42)

        assert result.entropy_value == 1
        assert "entropy poll failed" in caplog.text

    async def test_missing_sequence_number(self):
        chain = ScriptedChain(rounds=[_round(sequence_number=0)])
        requester = EntropyRequester(chain, reveal_delay_blocks=0, sleep=SleepRecorder())

        with pytest.raises(ChainError):
            await requester.request(42)

    async def test_timeout(self):
        async def slow_sleep(seconds):
            await asyncio.sleep(0.01)

        chain = ScriptedChain(rounds=[_round()])
        requester = EntropyRequester(chain, max_wait=0.05, reveal_delay_blocks=0, sleep=slow_sleep)

        with pytest.raises(EntropyTimeout) as exc:
            await requester.request(42)

        assert exc.value.round_id == 42
        assert isinstance(exc.value, ChainError)

    async def test_request_failure_propagates(self):
        chain = ScriptedChain(rounds=[_round()])

        def reverted(round_id, fee):
            raise ChainError("requestRandomness reverted")

        chain.request_randomness = reverted
        requester = EntropyRequester(chain, reveal_delay_blocks=0, sleep=SleepRecorder())

        with pytest.raises(ChainError, match="reverted"):
            await requester.request(42)
