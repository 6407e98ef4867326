# chain/client.py
import logging
from dataclasses import dataclass
from decimal import Decimal

import requests
from django.conf import settings
from eth_account import Account
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from web3 import Web3
from web3.exceptions import Web3Exception

from .abi import CRASH_GAME_ABI, ENTROPY_ABI, TOKEN_ABI
from .exceptions import ChainError

logger = logging.getLogger(__name__)

# Bets, payouts and multipliers are 18-decimal fixed point on-chain
TOKEN_DECIMALS = 18

_CHAIN_FAILURES = (Web3Exception, requests.RequestException, ValueError)


def to_fixed_point(value) -> int:
    """1.23 -> 1230000000000000000"""
    return int(Web3.to_wei(Decimal(str(value)), "ether"))


def from_token_units(amount: int) -> Decimal:
    return Decimal(Web3.from_wei(int(amount), "ether"))


@dataclass(frozen=True)
class OnChainRound:
    server_seed_hash: str
    server_seed: str
    sequence_number: int
    entropy_value: int
    status: int


@dataclass(frozen=True)
class OnChainBet:
    amount: int
    cash_out_multiplier: int
    settled: bool

    @property
    def amount_tokens(self) -> Decimal:
        return from_token_units(self.amount)


class CrashGameChain:
    """
    Blocking gateway to the CrashGame contract, its entropy provider and the
    pool token. Every transaction is signed locally and waited on until mined.
    Async callers wrap these methods with ``sync_to_async``.
    """

    def __init__(
        self,
        rpc_url,
        contract_address,
        private_key,
        chain_id,
        entropy_address=None,
        tx_timeout=120,
        rpc_timeout=30,
        max_retries=3,
        block_explorer="",
    ):
        self.chain_id = int(chain_id)
        self.tx_timeout = tx_timeout
        self.block_explorer = block_explorer
        self.max_retries = max_retries

        provider = Web3.HTTPProvider(
            rpc_url,
            request_kwargs={"timeout": rpc_timeout},
            session=self._create_session(),
        )
        self.w3 = Web3(provider)
        self.account = Account.from_key(private_key)
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=CRASH_GAME_ABI
        )
        self.entropy = None
        if entropy_address:
            self.entropy = self.w3.eth.contract(
                address=Web3.to_checksum_address(entropy_address), abi=ENTROPY_ABI
            )
        self._token = None

        logger.info(
            "Chain gateway ready: chain_id=%s contract=%s operator=%s",
            self.chain_id, self.contract.address, self.account.address,
        )

    @classmethod
    def from_settings(cls):
        cfg = settings.CHAIN
        missing = [k for k in ("CONTRACT_ADDRESS", "PRIVATE_KEY") if not cfg.get(k)]
        if missing:
            raise RuntimeError(f"Chain settings missing: {', '.join(missing)}")

        return cls(
            rpc_url=cfg["RPC_URL"],
            contract_address=cfg["CONTRACT_ADDRESS"],
            private_key=cfg["PRIVATE_KEY"],
            chain_id=cfg["CHAIN_ID"],
            entropy_address=cfg.get("ENTROPY_ADDRESS"),
            tx_timeout=cfg.get("TX_TIMEOUT", 120),
            rpc_timeout=cfg.get("RPC_TIMEOUT", 30),
            max_retries=cfg.get("RPC_MAX_RETRIES", 3),
            block_explorer=cfg.get("BLOCK_EXPLORER", ""),
        )

    def _create_session(self):
        """JSON-RPC session that retries transient HTTP failures with backoff"""
        session = requests.Session()

        # Re-sending the same signed raw transaction is idempotent, so POST is safe to retry
        retry_strategy = Retry(
            total=self.max_retries,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["POST"],
            backoff_factor=1,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=4, pool_maxsize=8)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.block_explorer}/tx/{tx_hash}" if self.block_explorer else tx_hash

    # ---------------------------------------------------
    # LOW LEVEL
    # ---------------------------------------------------
    def _call(self, fn, label):
        try:
            return fn.call()
        except _CHAIN_FAILURES as e:
            raise ChainError(f"{label} failed: {e}") from e

    def _transact(self, fn, label, value=0):
        try:
            tx = fn.build_transaction({
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
                "chainId": self.chain_id,
                "value": value,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        except _CHAIN_FAILURES as e:
            raise ChainError(f"{label} failed: {e}") from e

        tx_hex = Web3.to_hex(tx_hash)
        if receipt["status"] != 1:
            raise ChainError(f"{label} reverted: {tx_hex}")

        logger.info("%s mined in block %s: %s", label, receipt["blockNumber"], self.tx_url(tx_hex))
        return tx_hex

    # ---------------------------------------------------
    # ROUND LIFECYCLE
    # ---------------------------------------------------
    def create_round(self, server_seed_hash: str) -> int:
        commitment = Web3.to_bytes(hexstr=server_seed_hash)
        self._transact(self.contract.functions.createRound(commitment), "createRound")
        # roundCounter was incremented by createRound
        return self._call(self.contract.functions.roundCounter(), "roundCounter") - 1

    def entropy_fee(self) -> int:
        if self.entropy is None:
            raise ChainError("Entropy provider address is not configured")
        return self._call(self.entropy.functions.getFeeV2(), "getFeeV2")

    def request_randomness(self, round_id: int, fee: int) -> str:
        return self._transact(
            self.contract.functions.requestRandomness(round_id), "requestRandomness", value=fee
        )

    def get_round(self, round_id: int) -> OnChainRound:
        seed_hash, seed, sequence_number, entropy_value, status = self._call(
            self.contract.functions.getRound(round_id), "getRound"
        )
        return OnChainRound(
            server_seed_hash=Web3.to_hex(seed_hash),
            server_seed=bytes(seed).decode("utf-8") if seed else "",
            sequence_number=int(sequence_number),
            entropy_value=int(entropy_value),
            status=int(status),
        )

    def reveal_server_seed(self, round_id: int, server_seed: str) -> str:
        return self._transact(
            self.contract.functions.revealServerSeed(round_id, server_seed.encode("utf-8")),
            "revealServerSeed",
        )

    def settle_round(self, round_id: int, final_multiplier, server_seed: str) -> str:
        return self._transact(
            self.contract.functions.settleRound(
                round_id, to_fixed_point(final_multiplier), server_seed.encode("utf-8")
            ),
            "settleRound",
        )

    def process_cash_outs(self, round_id: int, entries) -> str:
        """entries: iterable of (wallet, multiplier_fixed_point)"""
        payload = [(Web3.to_checksum_address(w), int(m)) for w, m in entries]
        return self._transact(
            self.contract.functions.processCashOuts(round_id, payload), "processCashOuts"
        )

    # ---------------------------------------------------
    # READS
    # ---------------------------------------------------
    def get_bet(self, round_id: int, wallet: str) -> OnChainBet:
        amount, cash_out_multiplier, is_settled = self._call(
            self.contract.functions.getBet(round_id, Web3.to_checksum_address(wallet)), "getBet"
        )
        return OnChainBet(int(amount), int(cash_out_multiplier), bool(is_settled))

    def pool_balance(self) -> Decimal:
        """Token balance held by the game contract, in whole tokens"""
        if self._token is None:
            token_address = self._call(self.contract.functions.token(), "token")
            self._token = self.w3.eth.contract(address=token_address, abi=TOKEN_ABI)
        raw = self._call(self._token.functions.balanceOf(self.contract.address), "balanceOf")
        return from_token_units(raw)

    def block_number(self) -> int:
        try:
            return self.w3.eth.block_number
        except _CHAIN_FAILURES as e:
            raise ChainError(f"eth_blockNumber failed: {e}") from e
