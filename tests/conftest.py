import threading
from datetime import datetime, timedelta, timezone

import pytest

from blackswan.chain.client import TxResult
from blackswan.config import load_settings
from blackswan.errors import TransactionError
from blackswan.feeds.scores import ScoreSnapshot

PRIVATE_KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CONTRACT = "0x5fbdb2315678afecb367f032d93f642f64180aa3"


def base_env(**overrides):
    env = {
        "RPC_URL": "http://127.0.0.1:8545",
        "DEV_WALLET_PRIVATE_KEY": PRIVATE_KEY,
        "ORACLE_CONTRACT_ADDRESS": CONTRACT,
        "API_ENDPOINT": "https://analytics.example/api/scores",
    }
    env.update(overrides)
    return {k: v for k, v in env.items() if v is not None}


@pytest.fixture
def settings():
    return load_settings(base_env())


class FakeSource:
    """Returns queued snapshots (or raises queued exceptions); repeats the last one."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def push(self, *results):
        self.results.extend(results)

    def fetch(self):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeClient:
    address = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"

    def __init__(self):
        self.calls = []
        self.fail_with = None
        self.block = 100
        self.gate = None
        self.entered = threading.Event()

    def connect(self):
        pass

    def _tx(self, name, *args):
        self.calls.append((name, args))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail_with is not None:
            raise self.fail_with
        self.block += 1
        return TxResult(True, f"0x{len(self.calls):064x}", self.block, 42_000)

    def update_black_swan_score(self, score):
        return self._tx("update_black_swan_score", score)

    def update_market_peak_score(self, score):
        return self._tx("update_market_peak_score", score)

    def update_both_scores(self, bs, mp):
        return self._tx("update_both_scores", bs, mp)

    def update_black_swan_analysis_ipfs(self, ref):
        return self._tx("update_black_swan_analysis_ipfs", ref)

    def update_market_peak_analysis_ipfs(self, ref):
        return self._tx("update_market_peak_analysis_ipfs", ref)

    def update_scores_and_analysis(self, bs, mp, bs_ref, mp_ref):
        return self._tx("update_scores_and_analysis", bs, mp, bs_ref, mp_ref)


class FakePublisher:
    def __init__(self):
        self.published = []
        self.fail_with = None

    def publish(self, doc, name):
        if self.fail_with is not None:
            raise self.fail_with
        self.published.append((doc, name))
        return f"ipfs://cid-{len(self.published)}-{doc['type']}"


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def snap(bs, mp, **analysis):
    return ScoreSnapshot(bs, mp, analysis.get("bs_analysis"), analysis.get("mp_analysis"))


def reverted():
    return TransactionError("updateBothScores reverted on-chain", reason=TransactionError.REVERTED)


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def clock():
    return FakeClock()
