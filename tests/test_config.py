import base64

import pytest

from services.wecom_bridge import app as bridge_app
from services.wecom_bridge.config import BridgeConfig, normalize_path
from services.wecom_bridge.errors import ConfigError

from conftest import ZERO_KEY

ENV = {
    "WECOM_CALLBACK_TOKEN": "t1",
    "WECOM_CALLBACK_AES_KEY": ZERO_KEY,
    "OPENCLAW_HOOK_TOKEN": "hook-secret",
}


def test_defaults_from_env():
    config = BridgeConfig.from_env(ENV)
    assert config.port == 18888
    assert config.callback_path == "/wecom/callback"
    assert config.forward_url == "http://127.0.0.1:18789/hooks/wecom"
    assert config.forward_timeout == 8.0
    assert config.aes_key == bytes(32)


def test_overrides_from_env():
    config = BridgeConfig.from_env({
        **ENV,
        "WECOM_BRIDGE_PORT": "9000",
        "WECOM_CALLBACK_PATH": "cb//wecom/",
        "OPENCLAW_HOOK_BASE": "http://hooks.internal:8080",
        "OPENCLAW_HOOK_PATH": "/in",
        "WECOM_FORWARD_TIMEOUT_MS": "1500",
    })
    assert config.port == 9000
    assert config.callback_path == "/cb/wecom"
    assert config.forward_url == "http://hooks.internal:8080/in"
    assert config.forward_timeout == 1.5


@pytest.mark.parametrize("missing", sorted(ENV))
def test_missing_required_env(missing):
    env = {k: v for k, v in ENV.items() if k != missing}
    with pytest.raises(ConfigError) as exc:
        BridgeConfig.from_env(env)
    assert missing in exc.value.detail


def test_key_with_explicit_padding_is_accepted():
    config = BridgeConfig.from_env({**ENV, "WECOM_CALLBACK_AES_KEY": ZERO_KEY + "="})
    assert config.aes_key == bytes(32)


@pytest.mark.parametrize("key", [
    base64.b64encode(bytes(16)).decode().rstrip("="),
    "A" * 42,
    "not*base64" + "A" * 33,
])
def test_bad_key_refuses_to_load(key):
    with pytest.raises(ConfigError):
        BridgeConfig.from_env({**ENV, "WECOM_CALLBACK_AES_KEY": key})


def test_non_numeric_port_is_config_error():
    with pytest.raises(ConfigError):
        BridgeConfig.from_env({**ENV, "WECOM_BRIDGE_PORT": "eighty"})


def test_config_is_immutable():
    config = BridgeConfig.from_env(ENV)
    with pytest.raises(Exception):
        config.token = "other"


@pytest.mark.parametrize("raw, expected", [
    (None, "/wecom/callback"),
    ("   ", "/wecom/callback"),
    ("hook", "/hook"),
    ("//a///b//", "/a/b"),
    ("/", "/"),
])
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


def test_main_exits_without_credentials(monkeypatch):
    for name in ENV:
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(SystemExit) as exc:
        bridge_app.main()
    assert exc.value.code == 2
