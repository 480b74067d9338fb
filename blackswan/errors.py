# blackswan/errors.py
"""
Error taxonomy.

ConfigError and StartupConnectivityError are fatal at startup. FetchError,
PublishError and TransactionError are caught inside a cycle, recorded in the
service status, and the service waits for the next tick.
"""


class OracleError(Exception):
    """Base class for all service errors."""


class ConfigError(OracleError):
    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class StartupConnectivityError(OracleError):
    pass


class FetchError(OracleError):
    pass


class PublishError(OracleError):
    pass


class TransactionError(OracleError):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NONCE_CONFLICT = "nonce_conflict"
    CONTRACT_REJECTED = "contract_rejected"
    REVERTED = "reverted"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    SUBMISSION_FAILED = "submission_failed"

    def __init__(self, message: str, reason: str = SUBMISSION_FAILED, tx_hash: str | None = None):
        super().__init__(message)
        self.reason = reason
        self.tx_hash = tx_hash

    def __str__(self):
        return f"{self.reason}: {self.args[0]}"
