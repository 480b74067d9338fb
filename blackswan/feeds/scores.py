# blackswan/feeds/scores.py
"""
BlackSwan / MarketPeak Score Feed
BSO v1

Single upstream source: the analytics API at API_ENDPOINT, which returns

  {
    "blackswanScore": 42,
    "marketPeakScore": 61.7,
    "blackswanAnalysis": {...},     # optional, used when publishing to IPFS
    "marketPeakAnalysis": {...}     # optional
  }

Both scores are required and must be finite, non-negative and below 2**256.
They are truncated toward zero before they reach the contract (uint256).
"""

import math
from dataclasses import dataclass, field
from typing import Any, Union

import requests
from pydantic import BaseModel, ConfigDict, StrictFloat, StrictInt, ValidationError, field_validator

from blackswan.errors import FetchError

TIMEOUT = 30
USER_AGENT = "BlackSwanOracle/1.0"
UINT256_LIMIT = 2 ** 256

Number = Union[StrictInt, StrictFloat]


class ScoreResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    blackswanScore: Number
    marketPeakScore: Number
    blackswanAnalysis: dict[str, Any] | None = None
    marketPeakAnalysis: dict[str, Any] | None = None

    @field_validator("blackswanScore", "marketPeakScore")
    @classmethod
    def _finite_non_negative(cls, v):
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("score must be finite")
        if v < 0:
            raise ValueError(f"score must be >= 0, got {v}")
        if v >= UINT256_LIMIT:
            raise ValueError("score does not fit in uint256")
        return v


@dataclass(frozen=True)
class ScoreSnapshot:
    black_swan: int
    market_peak: int
    black_swan_analysis: dict | None = field(default=None, compare=False)
    market_peak_analysis: dict | None = field(default=None, compare=False)


def parse_scores(payload) -> ScoreSnapshot:
    """Validate a decoded API body and return integer scores."""
    try:
        parsed = ScoreResponse.model_validate(payload)
    except ValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
        )
        raise FetchError(f"Invalid API response: {problems}") from e

    return ScoreSnapshot(
        black_swan=int(parsed.blackswanScore),
        market_peak=int(parsed.marketPeakScore),
        black_swan_analysis=parsed.blackswanAnalysis,
        market_peak_analysis=parsed.marketPeakAnalysis,
    )


class ScoreSource:
    def __init__(self, endpoint: str, timeout: float = TIMEOUT, session: requests.Session | None = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> ScoreSnapshot:
        """Fetch and validate the current scores. Raises FetchError on any failure."""
        try:
            r = self.session.get(
                self.endpoint,
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        except requests.Timeout as e:
            raise FetchError("API request timed out") from e
        except requests.RequestException as e:
            raise FetchError(f"No response received from API: {e}") from e

        if not r.ok:
            raise FetchError(f"API returned error {r.status_code}: {r.reason}")

        try:
            payload = r.json()
        except ValueError as e:
            raise FetchError("API returned a non-JSON body") from e

        return parse_scores(payload)


# === CLI test ===

if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("usage: python -m blackswan.feeds.scores <api-endpoint>")
        sys.exit(2)

    snapshot = ScoreSource(sys.argv[1]).fetch()
    print(f"  BlackSwan:  {snapshot.black_swan}")
    print(f"  MarketPeak: {snapshot.market_peak}")
    print(f"  Analysis:   {'yes' if snapshot.black_swan_analysis or snapshot.market_peak_analysis else 'no'}")
