# blackswan/config.py
"""
Environment configuration.

Settings are read once at startup (a .env file in the working directory is
honoured) and validated as a whole, so a misconfigured deployment reports
every bad variable in one go instead of failing on the first.
"""

import logging
import os
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv
from web3 import Web3

from blackswan.errors import ConfigError

log = logging.getLogger("blackswan.config")

REQUIRED_VARS = [
    "RPC_URL",
    "DEV_WALLET_PRIVATE_KEY",
    "ORACLE_CONTRACT_ADDRESS",
    "API_ENDPOINT",
]

PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")

DEFAULT_POLL_INTERVAL = 60
DEFAULT_PORT = 8080
DEFAULT_API_TIMEOUT = 30
DEFAULT_GAS_LIMIT = 100_000
DEFAULT_CONFIRMATION_TIMEOUT = 120
BASE_MAINNET_CHAIN_ID = 8453
DEFAULT_PINATA_API_URL = "https://api.pinata.cloud"
DEFAULT_IPFS_GATEWAY = "https://gateway.pinata.cloud/ipfs"

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    private_key: str
    contract_address: str
    api_endpoint: str
    poll_interval: int = DEFAULT_POLL_INTERVAL
    port: int = DEFAULT_PORT
    api_timeout: float = DEFAULT_API_TIMEOUT
    gas_limit: int = DEFAULT_GAS_LIMIT
    max_fee_per_gas_gwei: Decimal | None = None
    max_priority_fee_per_gas_gwei: Decimal | None = None
    gas_price_gwei: Decimal | None = None
    confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT
    expected_chain_id: int = BASE_MAINNET_CHAIN_ID
    ipfs_enabled: bool = False
    pinata_jwt: str | None = None
    pinata_api_key: str | None = None
    pinata_secret_api_key: str | None = None
    pinata_api_url: str = DEFAULT_PINATA_API_URL
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
    dry_run: bool = False
    log_level: str = "INFO"

    def __repr__(self):
        # Keep the key and Pinata secrets out of logs and tracebacks.
        return (
            f"Settings(rpc_url={self.rpc_url!r}, contract_address={self.contract_address!r}, "
            f"api_endpoint={self.api_endpoint!r}, poll_interval={self.poll_interval}, "
            f"port={self.port}, ipfs_enabled={self.ipfs_enabled}, dry_run={self.dry_run})"
        )


class _Reader:
    """Collects parse problems instead of raising on the first one."""

    def __init__(self, environ):
        self.env = environ
        self.problems = []

    def raw(self, name):
        value = self.env.get(name)
        if value is None:
            return None
        value = value.strip()
        return value or None

    def integer(self, name, default, minimum=1, maximum=None):
        value = self.raw(name)
        if value is None:
            return default
        try:
            parsed = int(value)
        except ValueError:
            self.problems.append(f"{name} must be an integer, got {value!r}")
            return default
        if parsed < minimum or (maximum is not None and parsed > maximum):
            bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
            self.problems.append(f"{name} must be {bounds}, got {parsed}")
            return default
        return parsed

    def number(self, name, default):
        value = self.raw(name)
        if value is None:
            return default
        try:
            parsed = float(value)
        except ValueError:
            self.problems.append(f"{name} must be a number, got {value!r}")
            return default
        if parsed <= 0:
            self.problems.append(f"{name} must be > 0, got {value}")
            return default
        return parsed

    def gwei(self, name):
        value = self.raw(name)
        if value is None:
            return None
        try:
            parsed = Decimal(value)
        except InvalidOperation:
            self.problems.append(f"{name} must be a decimal gwei amount, got {value!r}")
            return None
        if not parsed.is_finite() or parsed < 0:
            self.problems.append(f"{name} must be a non-negative gwei amount, got {value}")
            return None
        return parsed

    def flag(self, name, default=False):
        value = self.raw(name)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in TRUTHY:
            return True
        if lowered in FALSY:
            return False
        self.problems.append(f"{name} must be a boolean (true/false), got {value!r}")
        return default


def load_settings(environ=None, dotenv: bool = True) -> Settings:
    """Build Settings from the environment, raising ConfigError on any problem."""
    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ

    r = _Reader(environ)

    missing = [name for name in REQUIRED_VARS if r.raw(name) is None]
    if missing:
        r.problems.append(f"Missing required environment variables: {', '.join(missing)}")

    private_key = r.raw("DEV_WALLET_PRIVATE_KEY")
    if private_key is not None and not PRIVATE_KEY_RE.match(private_key):
        r.problems.append("DEV_WALLET_PRIVATE_KEY must be 64 hex characters (optional 0x prefix)")
    if private_key is not None and private_key.startswith("0x"):
        private_key = private_key[2:]

    contract_address = r.raw("ORACLE_CONTRACT_ADDRESS")
    if contract_address is not None:
        if Web3.is_address(contract_address):
            contract_address = Web3.to_checksum_address(contract_address)
        else:
            r.problems.append(f"ORACLE_CONTRACT_ADDRESS is not a valid address: {contract_address!r}")

    ipfs_enabled = r.flag("ENABLE_IPFS")
    pinata_jwt = r.raw("PINATA_JWT")
    pinata_api_key = r.raw("PINATA_API_KEY")
    pinata_secret = r.raw("PINATA_SECRET_API_KEY")
    if ipfs_enabled and not pinata_jwt and not (pinata_api_key and pinata_secret):
        r.problems.append(
            "ENABLE_IPFS requires PINATA_JWT or both PINATA_API_KEY and PINATA_SECRET_API_KEY"
        )

    poll_interval = r.integer("POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL)
    if r.raw("POLL_INTERVAL") is not None:
        if r.raw("POLL_INTERVAL_SECONDS") is None:
            # older deployments set the interval in milliseconds
            legacy_ms = r.integer("POLL_INTERVAL", DEFAULT_POLL_INTERVAL * 1000)
            poll_interval = max(1, round(legacy_ms / 1000))
            log.warning(
                f"POLL_INTERVAL (milliseconds) is deprecated, use POLL_INTERVAL_SECONDS={poll_interval}"
            )
        else:
            log.warning("POLL_INTERVAL is ignored because POLL_INTERVAL_SECONDS is set")

    settings = dict(
        rpc_url=r.raw("RPC_URL") or "",
        private_key=private_key or "",
        contract_address=contract_address or "",
        api_endpoint=r.raw("API_ENDPOINT") or "",
        poll_interval=poll_interval,
        port=r.integer("PORT", DEFAULT_PORT, maximum=65535),
        api_timeout=r.number("API_TIMEOUT_SECONDS", DEFAULT_API_TIMEOUT),
        gas_limit=r.integer("GAS_LIMIT", DEFAULT_GAS_LIMIT),
        max_fee_per_gas_gwei=r.gwei("MAX_FEE_PER_GAS_GWEI"),
        max_priority_fee_per_gas_gwei=r.gwei("MAX_PRIORITY_FEE_PER_GAS_GWEI"),
        gas_price_gwei=r.gwei("GAS_PRICE_GWEI"),
        confirmation_timeout=r.number("TX_CONFIRMATION_TIMEOUT_SECONDS", DEFAULT_CONFIRMATION_TIMEOUT),
        expected_chain_id=r.integer("EXPECTED_CHAIN_ID", BASE_MAINNET_CHAIN_ID),
        ipfs_enabled=ipfs_enabled,
        pinata_jwt=pinata_jwt,
        pinata_api_key=pinata_api_key,
        pinata_secret_api_key=pinata_secret,
        pinata_api_url=(r.raw("PINATA_API_URL") or DEFAULT_PINATA_API_URL).rstrip("/"),
        ipfs_gateway=(r.raw("IPFS_GATEWAY") or DEFAULT_IPFS_GATEWAY).rstrip("/"),
        dry_run=r.flag("DRY_RUN"),
        log_level=(r.raw("LOG_LEVEL") or "INFO").upper(),
    )

    if r.problems:
        raise ConfigError(r.problems)
    return Settings(**settings)
