# blackswan/chain/simulated.py
"""
In-memory oracle contract (DRY_RUN=true).

Mirrors the on-chain contract's behaviour closely enough to run the whole
service without a node:

  - owner + dev wallet allow-list may write; anyone may read
  - owner can pause, which blocks every write
  - dev wallets are kept as a set plus an enumerable list; removal swaps the
    last entry into the removed slot, so list order is NOT stable across
    removals (membership is)
  - every mutation records an event with the new value(s) and the sender
"""

import hashlib
import itertools
import logging
import threading
from dataclasses import dataclass, field

from eth_account import Account
from web3 import Web3

from blackswan.chain.client import TxResult
from blackswan.errors import TransactionError

log = logging.getLogger("blackswan.chain.simulated")

ZERO_ADDRESS = "0x" + "00" * 20
BASE_GAS = 21_000
GAS_PER_WORD = 5_000


class ContractRevert(Exception):
    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


@dataclass
class Event:
    name: str
    args: dict
    sender: str
    block_number: int


@dataclass
class OracleContract:
    owner: str
    black_swan_score: int = 0
    market_peak_score: int = 0
    black_swan_analysis_ipfs: str = ""
    market_peak_analysis_ipfs: str = ""
    paused: bool = False
    events: list = field(default_factory=list)
    block_number: int = 0
    _dev_wallets: set = field(default_factory=set)
    _dev_wallet_list: list = field(default_factory=list)

    def __post_init__(self):
        self.owner = Web3.to_checksum_address(self.owner)

    # === Access control ===

    def _only_owner(self, sender):
        sender = Web3.to_checksum_address(sender)
        if sender != self.owner:
            raise ContractRevert("Only owner")
        return sender

    def _only_writer(self, sender):
        sender = Web3.to_checksum_address(sender)
        if self.paused:
            raise ContractRevert("Contract is paused")
        if sender != self.owner and sender not in self._dev_wallets:
            raise ContractRevert("Not authorized")
        return sender

    def _emit(self, name, sender, **args):
        self.block_number += 1
        self.events.append(Event(name, args, sender, self.block_number))

    def is_dev_wallet(self, address) -> bool:
        return Web3.to_checksum_address(address) in self._dev_wallets

    def get_dev_wallets(self) -> list:
        return list(self._dev_wallet_list)

    def add_dev_wallet(self, sender, wallet):
        sender = self._only_owner(sender)
        if not Web3.is_address(wallet) or Web3.to_checksum_address(wallet) == ZERO_ADDRESS:
            raise ContractRevert("Invalid address")
        wallet = Web3.to_checksum_address(wallet)
        if wallet in self._dev_wallets:
            raise ContractRevert("Already a dev wallet")
        self._dev_wallets.add(wallet)
        self._dev_wallet_list.append(wallet)
        self._emit("DevWalletAdded", sender, wallet=wallet)

    def remove_dev_wallet(self, sender, wallet):
        sender = self._only_owner(sender)
        wallet = Web3.to_checksum_address(wallet)
        if wallet not in self._dev_wallets:
            raise ContractRevert("Not a dev wallet")
        self._dev_wallets.discard(wallet)
        idx = self._dev_wallet_list.index(wallet)
        self._dev_wallet_list[idx] = self._dev_wallet_list[-1]
        self._dev_wallet_list.pop()
        self._emit("DevWalletRemoved", sender, wallet=wallet)

    def pause(self, sender):
        sender = self._only_owner(sender)
        self.paused = True
        self._emit("Paused", sender)

    def unpause(self, sender):
        sender = self._only_owner(sender)
        self.paused = False
        self._emit("Unpaused", sender)

    # === Writes ===

    def update_black_swan_score(self, sender, score):
        sender = self._only_writer(sender)
        self.black_swan_score = _uint(score)
        self._emit("BlackSwanScoreUpdated", sender, score=self.black_swan_score)

    def update_market_peak_score(self, sender, score):
        sender = self._only_writer(sender)
        self.market_peak_score = _uint(score)
        self._emit("MarketPeakScoreUpdated", sender, score=self.market_peak_score)

    def update_both_scores(self, sender, black_swan, market_peak):
        sender = self._only_writer(sender)
        black_swan, market_peak = _uint(black_swan), _uint(market_peak)
        self.black_swan_score = black_swan
        self.market_peak_score = market_peak
        self._emit("BothScoresUpdated", sender,
                   blackSwanScore=self.black_swan_score, marketPeakScore=self.market_peak_score)

    def update_black_swan_analysis_ipfs(self, sender, ref):
        sender = self._only_writer(sender)
        self.black_swan_analysis_ipfs = ref
        self._emit("BlackSwanAnalysisIPFSUpdated", sender, ipfsHash=ref)

    def update_market_peak_analysis_ipfs(self, sender, ref):
        sender = self._only_writer(sender)
        self.market_peak_analysis_ipfs = ref
        self._emit("MarketPeakAnalysisIPFSUpdated", sender, ipfsHash=ref)

    def update_scores_and_analysis(self, sender, black_swan, market_peak, black_swan_ref, market_peak_ref):
        sender = self._only_writer(sender)
        black_swan, market_peak = _uint(black_swan), _uint(market_peak)
        self.black_swan_score = black_swan
        self.market_peak_score = market_peak
        self.black_swan_analysis_ipfs = black_swan_ref
        self.market_peak_analysis_ipfs = market_peak_ref
        self._emit("ScoresAndAnalysisUpdated", sender,
                   blackSwanScore=self.black_swan_score, marketPeakScore=self.market_peak_score,
                   blackSwanIPFS=black_swan_ref, marketPeakIPFS=market_peak_ref)


def _uint(value):
    if not isinstance(value, int) or isinstance(value, bool) or value < 0 or value >= 2 ** 256:
        raise ContractRevert(f"uint256 out of range: {value!r}")
    return value


class SimulatedOracleClient:
    """OracleClient interface over an OracleContract held in memory."""

    def __init__(self, contract: OracleContract, sender: str):
        self.contract = contract
        self.sender = Web3.to_checksum_address(sender)
        self.chain_id = None
        self._lock = threading.Lock()
        self._nonce = itertools.count()

    @classmethod
    def from_settings(cls, settings):
        address = Account.from_key("0x" + settings.private_key).address
        return cls(OracleContract(owner=address), address)

    @property
    def address(self) -> str:
        return self.sender

    def connect(self):
        log.warning("DRY_RUN enabled: writes go to an in-memory oracle contract")
        log.info(f"Dev wallet address: {self.sender}")

    def read_scores(self) -> dict:
        c = self.contract
        return {
            "blackSwanScore": c.black_swan_score,
            "marketPeakScore": c.market_peak_score,
            "blackSwanAnalysisIPFS": c.black_swan_analysis_ipfs,
            "marketPeakAnalysisIPFS": c.market_peak_analysis_ipfs,
        }

    def update_black_swan_score(self, score):
        return self._transact("update_black_swan_score", score)

    def update_market_peak_score(self, score):
        return self._transact("update_market_peak_score", score)

    def update_both_scores(self, black_swan, market_peak):
        return self._transact("update_both_scores", black_swan, market_peak)

    def update_black_swan_analysis_ipfs(self, ref):
        return self._transact("update_black_swan_analysis_ipfs", ref)

    def update_market_peak_analysis_ipfs(self, ref):
        return self._transact("update_market_peak_analysis_ipfs", ref)

    def update_scores_and_analysis(self, black_swan, market_peak, black_swan_ref, market_peak_ref):
        return self._transact("update_scores_and_analysis", black_swan, market_peak,
                              black_swan_ref, market_peak_ref)

    def _transact(self, fn_name, *args):
        with self._lock:
            nonce = next(self._nonce)
            tx_hash = "0x" + hashlib.sha256(f"{self.sender}:{nonce}:{fn_name}:{args}".encode()).hexdigest()
            try:
                getattr(self.contract, fn_name)(self.sender, *args)
            except ContractRevert as e:
                log.error(f"{fn_name} reverted: {e.reason}")
                raise TransactionError(f"{fn_name}: {e.reason}", reason=TransactionError.CONTRACT_REJECTED,
                                       tx_hash=tx_hash) from e
            result = TxResult(
                success=True,
                tx_hash=tx_hash,
                block_number=self.contract.block_number,
                gas_used=BASE_GAS + GAS_PER_WORD * len(args),
            )
        log.info(f"{fn_name} confirmed (simulated). Block: {result.block_number}, Gas used: {result.gas_used}")
        return result
