# blackswan/publisher.py
"""
Analysis Document Publisher
BSO v1

Builds one JSON document per analysis type and pins it to IPFS through the
Pinata pinning API. The returned reference is ipfs://<cid>, which is what the
oracle contract stores.

Document layout:

  {
    "type": "blackswan-analysis",
    "version": "1.0",
    "generatedAt": "2026-10-19T09:00:00Z",
    "score": 42,
    ...analysis fields...,
    "dataSource": "<API_ENDPOINT>",
    "attestation": {
      "scheme": "secp256k1-sha256",
      "digest": "<sha256 of canonical document without attestation>",
      "signature": "<base64 raw r||s>",
      "pubkey": "<compressed secp256k1 pubkey>"
    }
  }
"""

import base64
import hashlib
import json
import logging
from datetime import datetime, timezone

import requests
from ecdsa import SigningKey, SECP256k1

from blackswan.errors import PublishError

log = logging.getLogger("blackswan.publisher")

TIMEOUT = 30
DOCUMENT_VERSION = "1.0"
IPFS_SCHEME = "ipfs://"

BLACK_SWAN = "blackswan"
MARKET_PEAK = "marketpeak"
DOCUMENT_TYPES = {
    BLACK_SWAN: "blackswan-analysis",
    MARKET_PEAK: "marketpeak-analysis",
}

# Fields the document itself owns; analysis payloads cannot override them.
RESERVED_FIELDS = {"type", "version", "generatedAt", "score", "dataSource", "attestation"}


def canonical_json(doc: dict) -> str:
    return json.dumps(doc, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def build_document(kind: str, score: int, analysis: dict | None, data_source: str,
                   generated_at: datetime | None = None) -> dict:
    """Assemble the unsigned analysis document for one score type."""
    if kind not in DOCUMENT_TYPES:
        raise ValueError(f"unknown analysis type: {kind}")
    ts = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")

    doc = {
        "type": DOCUMENT_TYPES[kind],
        "version": DOCUMENT_VERSION,
        "generatedAt": ts,
        "score": score,
    }
    for key, value in (analysis or {}).items():
        if key not in RESERVED_FIELDS:
            doc[key] = value
    doc["dataSource"] = data_source
    return doc


def sign_document(doc: dict, signing_key: SigningKey) -> dict:
    """Return a copy of doc with an attestation over its canonical form."""
    body = {k: v for k, v in doc.items() if k != "attestation"}
    digest = hashlib.sha256(canonical_json(body).encode()).digest()
    sig = signing_key.sign_digest(digest)
    signed = dict(body)
    signed["attestation"] = {
        "scheme": "secp256k1-sha256",
        "digest": digest.hex(),
        "signature": base64.b64encode(sig).decode(),
        "pubkey": signing_key.get_verifying_key().to_string("compressed").hex(),
    }
    return signed


def gateway_url(ref: str | None, gateway: str) -> str | None:
    if not ref:
        return None
    cid = ref[len(IPFS_SCHEME):] if ref.startswith(IPFS_SCHEME) else ref
    return f"{gateway.rstrip('/')}/{cid}"


class ContentPublisher:
    def __init__(self, api_url: str, private_key_hex: str, jwt: str | None = None,
                 api_key: str | None = None, api_secret: str | None = None,
                 timeout: float = TIMEOUT, session: requests.Session | None = None):
        if not jwt and not (api_key and api_secret):
            raise ValueError("Pinata credentials required: JWT or API key + secret")
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.signing_key = SigningKey.from_string(bytes.fromhex(private_key_hex), curve=SECP256k1)
        if jwt:
            self._auth = {"Authorization": f"Bearer {jwt}"}
        else:
            self._auth = {"pinata_api_key": api_key, "pinata_secret_api_key": api_secret}

    @classmethod
    def from_settings(cls, settings):
        return cls(
            api_url=settings.pinata_api_url,
            private_key_hex=settings.private_key,
            jwt=settings.pinata_jwt,
            api_key=settings.pinata_api_key,
            api_secret=settings.pinata_secret_api_key,
        )

    def publish(self, doc: dict, name: str) -> str:
        """Sign and pin a document. Returns ipfs://<cid>; raises PublishError."""
        signed = sign_document(doc, self.signing_key)
        body = {
            "pinataContent": signed,
            "pinataMetadata": {
                "name": name,
                "keyvalues": {"type": signed["type"], "score": str(signed["score"])},
            },
        }
        try:
            r = self.session.post(
                f"{self.api_url}/pinning/pinJSONToIPFS",
                json=body,
                headers={**self._auth, "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise PublishError(f"IPFS pinning service unreachable: {e}") from e

        if not r.ok:
            raise PublishError(f"IPFS pinning rejected ({r.status_code}): {r.text[:200]}")

        try:
            cid = r.json()["IpfsHash"]
        except (ValueError, KeyError, TypeError) as e:
            raise PublishError("IPFS pinning response missing IpfsHash") from e

        ref = f"{IPFS_SCHEME}{cid}"
        log.info(f"Pinned {signed['type']} (score {signed['score']}) -> {ref}")
        return ref
