import json
from typing import List

import httpx
import pytest
from fastapi.testclient import TestClient

from services.wecom_bridge.app import create_app
from services.wecom_bridge.config import BridgeConfig
from services.wecom_bridge.envelope import EnvelopeCodec
from services.wecom_bridge.forwarder import Forwarder
from services.wecom_bridge.signature import compute_signature

# 32 zero bytes
ZERO_KEY = "A" * 43
TOKEN = "t1"
TIMESTAMP = "1700000000"
NONCE = "n1"
HOOK_TOKEN = "hook-secret"
CORP_ID = "wwcorp"


class Downstream:
    """Records every forwarded request and answers with a configurable status."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status = 200
        self.text = "ok"

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, text=self.text)

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]


def signed_params(encrypt: str, timestamp: str = TIMESTAMP, nonce: str = NONCE, token: str = TOKEN) -> dict:
    return {
        "msg_signature": compute_signature(token, timestamp, nonce, encrypt),
        "timestamp": timestamp,
        "nonce": nonce,
    }


def callback_body(encrypt: str) -> str:
    return (
        "<xml><ToUserName><![CDATA[wwcorp]]></ToUserName>"
        f"<Encrypt><![CDATA[{encrypt}]]></Encrypt>"
        "<AgentID><![CDATA[1000002]]></AgentID></xml>"
    )


@pytest.fixture
def config():
    return BridgeConfig(
        token=TOKEN,
        encoding_aes_key=ZERO_KEY,
        hook_token=HOOK_TOKEN,
        hook_base="http://hooks.test",
        forward_timeout_ms=200,
    )


@pytest.fixture
def codec(config):
    return EnvelopeCodec(config.aes_key)


@pytest.fixture
def downstream():
    return Downstream()


@pytest.fixture
def client(config, downstream):
    forwarder = Forwarder(config, transport=httpx.MockTransport(downstream))
    with TestClient(create_app(config, forwarder)) as c:
        yield c
