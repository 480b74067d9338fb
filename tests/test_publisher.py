import base64
import hashlib
import json
from datetime import datetime, timezone

import pytest
import requests
from ecdsa import SECP256k1, VerifyingKey

from blackswan.errors import PublishError
from blackswan.publisher import (
    ContentPublisher,
    build_document,
    canonical_json,
    gateway_url,
    sign_document,
)
from tests.conftest import PRIVATE_KEY

GENERATED = datetime(2026, 10, 19, 9, 30, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, body=None, status_code=200, text=""):
        self.body = body
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.text = text or json.dumps(body)

    def json(self):
        if self.body is None:
            raise ValueError("no body")
        return self.body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.posts = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


def publisher(session, **auth):
    auth = auth or {"jwt": "test-jwt"}
    return ContentPublisher("https://api.pinata.cloud/", PRIVATE_KEY, session=session, **auth)


def test_build_document_layout():
    doc = build_document(
        "blackswan", 42,
        {"confidence": 0.8, "reasoning": "tail risk", "score": 99, "type": "spoofed"},
        "https://analytics.example/api", GENERATED,
    )
    assert doc == {
        "type": "blackswan-analysis",
        "version": "1.0",
        "generatedAt": "2026-10-19T09:30:00Z",
        "score": 42,
        "confidence": 0.8,
        "reasoning": "tail risk",
        "dataSource": "https://analytics.example/api",
    }


def test_build_document_without_analysis():
    doc = build_document("marketpeak", 7, None, "src", GENERATED)
    assert doc["type"] == "marketpeak-analysis"
    assert doc["score"] == 7
    assert set(doc) == {"type", "version", "generatedAt", "score", "dataSource"}


def test_build_document_unknown_type():
    with pytest.raises(ValueError):
        build_document("bubble", 1, None, "src", GENERATED)


def test_canonical_json_is_order_independent():
    assert canonical_json({"b": 1, "a": [2, 3]}) == canonical_json({"a": [2, 3], "b": 1}) == '{"a":[2,3],"b":1}'


def test_attestation_verifies_against_wallet_key():
    doc = build_document("blackswan", 42, {"confidence": 0.8}, "src", GENERATED)
    pub = publisher(FakeSession())

    signed = sign_document(doc, pub.signing_key)

    att = signed["attestation"]
    body = {k: v for k, v in signed.items() if k != "attestation"}
    digest = hashlib.sha256(canonical_json(body).encode()).digest()
    assert att["digest"] == digest.hex()
    vk = VerifyingKey.from_string(bytes.fromhex(att["pubkey"]), curve=SECP256k1)
    assert vk.verify_digest(base64.b64decode(att["signature"]), digest)
    assert body == doc


def test_publish_returns_ipfs_ref_and_sends_jwt():
    session = FakeSession(FakeResponse({"IpfsHash": "bafyabc", "PinSize": 512}))
    doc = build_document("blackswan", 42, None, "src", GENERATED)

    ref = publisher(session).publish(doc, "blackswan-analysis-20261019T093000Z")

    assert ref == "ipfs://bafyabc"
    post = session.posts[0]
    assert post["url"] == "https://api.pinata.cloud/pinning/pinJSONToIPFS"
    assert post["headers"]["Authorization"] == "Bearer test-jwt"
    assert post["json"]["pinataMetadata"]["name"] == "blackswan-analysis-20261019T093000Z"
    assert post["json"]["pinataContent"]["score"] == 42
    assert "attestation" in post["json"]["pinataContent"]


def test_publish_with_key_and_secret_headers():
    session = FakeSession(FakeResponse({"IpfsHash": "Qm1"}))
    pub = publisher(session, api_key="key", api_secret="secret")

    pub.publish(build_document("marketpeak", 1, None, "src", GENERATED), "n")

    headers = session.posts[0]["headers"]
    assert headers["pinata_api_key"] == "key"
    assert headers["pinata_secret_api_key"] == "secret"
    assert "Authorization" not in headers


def test_publisher_requires_credentials():
    with pytest.raises(ValueError):
        ContentPublisher("https://api.pinata.cloud", PRIVATE_KEY, session=FakeSession())


@pytest.mark.parametrize("session", [
    FakeSession(exc=requests.ConnectionError("down")),
    FakeSession(FakeResponse({"error": "bad auth"}, status_code=401)),
    FakeSession(FakeResponse({"PinSize": 1})),
    FakeSession(FakeResponse(None, text="<html>")),
])
def test_publish_failures_raise_publish_error(session):
    doc = build_document("blackswan", 1, None, "src", GENERATED)
    with pytest.raises(PublishError):
        publisher(session).publish(doc, "n")


def test_gateway_url():
    assert gateway_url("ipfs://bafyabc", "https://gateway.pinata.cloud/ipfs/") == "https://gateway.pinata.cloud/ipfs/bafyabc"
    assert gateway_url("bafyabc", "https://gw") == "https://gw/bafyabc"
    assert gateway_url(None, "https://gw") is None
