from blackswan.chain.client import OracleClient, TxResult
from blackswan.chain.simulated import OracleContract, SimulatedOracleClient


def build_client(settings):
    """Pick the web3 client or the in-memory contract (DRY_RUN)."""
    if settings.dry_run:
        return SimulatedOracleClient.from_settings(settings)
    return OracleClient.from_settings(settings)


__all__ = ["OracleClient", "TxResult", "OracleContract", "SimulatedOracleClient", "build_client"]
