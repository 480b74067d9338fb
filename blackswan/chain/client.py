# blackswan/chain/client.py
"""
Oracle Contract Client (web3)
BSO v1

Signs, submits and confirms calls against the oracle contract from the single
dev wallet. Every write waits for its receipt; anything short of a confirmed
status-1 receipt surfaces as TransactionError with a reason:

  insufficient_funds    wallet cannot pay for gas
  nonce_conflict        nonce too low / replacement underpriced
  contract_rejected     contract reverted with a reason (auth, pause, ...)
  reverted              mined with status 0
  confirmation_timeout  no receipt within TX_CONFIRMATION_TIMEOUT_SECONDS
  submission_failed     anything else on the way to the node
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from eth_account import Account
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from blackswan.chain.abi import ORACLE_ABI
from blackswan.errors import StartupConnectivityError, TransactionError

log = logging.getLogger("blackswan.chain")

RPC_TIMEOUT = 30


@dataclass(frozen=True)
class TxResult:
    success: bool
    tx_hash: str
    block_number: int | None
    gas_used: int | None


def classify_error(exc: Exception) -> str:
    if isinstance(exc, TimeExhausted):
        return TransactionError.CONFIRMATION_TIMEOUT
    if isinstance(exc, ContractLogicError):
        return TransactionError.CONTRACT_REJECTED
    message = str(exc).lower()
    if "insufficient funds" in message:
        return TransactionError.INSUFFICIENT_FUNDS
    if "nonce" in message or "replacement transaction underpriced" in message:
        return TransactionError.NONCE_CONFLICT
    if "execution reverted" in message:
        return TransactionError.CONTRACT_REJECTED
    return TransactionError.SUBMISSION_FAILED


def tx_options(gas_limit: int, max_fee_gwei: Decimal | None = None,
               max_priority_fee_gwei: Decimal | None = None,
               gas_price_gwei: Decimal | None = None) -> dict:
    """Gas/fee fields for build_transaction; legacy gasPrice only without an EIP-1559 max fee."""
    opts = {"gas": gas_limit}
    if max_fee_gwei is not None:
        opts["maxFeePerGas"] = Web3.to_wei(max_fee_gwei, "gwei")
    if max_priority_fee_gwei is not None:
        opts["maxPriorityFeePerGas"] = Web3.to_wei(max_priority_fee_gwei, "gwei")
    if gas_price_gwei is not None and max_fee_gwei is None:
        opts["gasPrice"] = Web3.to_wei(gas_price_gwei, "gwei")
    return opts


class OracleClient:
    def __init__(self, w3, account, contract_address: str, options: dict | None = None,
                 confirmation_timeout: float = 120, expected_chain_id: int | None = None):
        self.w3 = w3
        self.account = account
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = w3.eth.contract(address=self.contract_address, abi=ORACLE_ABI)
        self.options = options or {"gas": 100_000}
        self.confirmation_timeout = confirmation_timeout
        self.expected_chain_id = expected_chain_id
        self.chain_id = None

    @classmethod
    def from_settings(cls, settings):
        w3 = Web3(Web3.HTTPProvider(settings.rpc_url, request_kwargs={"timeout": RPC_TIMEOUT}))
        account = Account.from_key("0x" + settings.private_key)
        return cls(
            w3,
            account,
            settings.contract_address,
            options=tx_options(
                settings.gas_limit,
                settings.max_fee_per_gas_gwei,
                settings.max_priority_fee_per_gas_gwei,
                settings.gas_price_gwei,
            ),
            confirmation_timeout=settings.confirmation_timeout,
            expected_chain_id=settings.expected_chain_id,
        )

    @property
    def address(self) -> str:
        return self.account.address

    def connect(self):
        """Check the provider and wallet before the first cycle."""
        try:
            if not self.w3.is_connected():
                raise StartupConnectivityError("Cannot connect to RPC provider")
            self.chain_id = self.w3.eth.chain_id
            balance = self.w3.eth.get_balance(self.address)
        except StartupConnectivityError:
            raise
        except Exception as e:
            raise StartupConnectivityError(f"Failed to connect to blockchain: {e}") from e

        if self.expected_chain_id is not None and self.chain_id != self.expected_chain_id:
            log.warning(
                f"Connected to chain ID {self.chain_id}, expected {self.expected_chain_id}. "
                "Ensure you're using the correct network."
            )
        log.info(f"Connected to chain ID {self.chain_id}")
        log.info(f"Dev wallet address: {self.address}")
        log.info(f"Dev wallet balance: {Web3.from_wei(balance, 'ether')} ETH")
        if balance == 0:
            log.warning("Dev wallet has zero balance. Ensure it has sufficient funds for transactions.")
        log.info(f"Contract address: {self.contract_address}")

    def read_scores(self) -> dict:
        f = self.contract.functions
        return {
            "blackSwanScore": f.blackSwanScore().call(),
            "marketPeakScore": f.marketPeakScore().call(),
            "blackSwanAnalysisIPFS": f.blackSwanAnalysisIPFS().call(),
            "marketPeakAnalysisIPFS": f.marketPeakAnalysisIPFS().call(),
        }

    # === Writes ===

    def update_black_swan_score(self, score: int) -> TxResult:
        return self._transact("updateBlackSwanScore", score)

    def update_market_peak_score(self, score: int) -> TxResult:
        return self._transact("updateMarketPeakScore", score)

    def update_both_scores(self, black_swan: int, market_peak: int) -> TxResult:
        return self._transact("updateBothScores", black_swan, market_peak)

    def update_black_swan_analysis_ipfs(self, ref: str) -> TxResult:
        return self._transact("updateBlackSwanAnalysisIPFS", ref)

    def update_market_peak_analysis_ipfs(self, ref: str) -> TxResult:
        return self._transact("updateMarketPeakAnalysisIPFS", ref)

    def update_scores_and_analysis(self, black_swan: int, market_peak: int,
                                   black_swan_ref: str, market_peak_ref: str) -> TxResult:
        return self._transact("updateScoresAndAnalysis", black_swan, market_peak,
                              black_swan_ref, market_peak_ref)

    def _transact(self, fn_name: str, *args) -> TxResult:
        tx_hash = None
        try:
            params = {
                "from": self.address,
                "nonce": self.w3.eth.get_transaction_count(self.address, "pending"),
                **self.options,
            }
            if self.chain_id is not None:
                params["chainId"] = self.chain_id
            tx = getattr(self.contract.functions, fn_name)(*args).build_transaction(params)
            signed = self.account.sign_transaction(tx)
            tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))
            log.info(f"{fn_name} transaction sent: {tx_hash}")
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)
        except Exception as e:
            reason = classify_error(e)
            detail = getattr(e, "message", None) or str(e)
            log.error(f"{fn_name} failed ({reason}): {detail}")
            raise TransactionError(f"{fn_name}: {detail}", reason=reason, tx_hash=tx_hash) from e

        if receipt["status"] != 1:
            log.error(f"{fn_name} reverted in block {receipt['blockNumber']}: {tx_hash}")
            raise TransactionError(f"{fn_name} reverted on-chain", reason=TransactionError.REVERTED,
                                   tx_hash=tx_hash)

        result = TxResult(
            success=True,
            tx_hash=tx_hash,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
        )
        log.info(f"{fn_name} confirmed. Block: {result.block_number}, Gas used: {result.gas_used}")
        return result
