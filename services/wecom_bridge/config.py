import base64
import binascii
import os
import re
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from services.wecom_bridge.errors import ConfigError

AES_KEY_SIZE = 32

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 18888
DEFAULT_CALLBACK_PATH = "/wecom/callback"
DEFAULT_HOOK_BASE = "http://127.0.0.1:18789"
DEFAULT_HOOK_PATH = "/hooks/wecom"
DEFAULT_FORWARD_TIMEOUT_MS = 8000


def normalize_path(raw: Optional[str], default: str = DEFAULT_CALLBACK_PATH) -> str:
    """Leading slash, no duplicate slashes, no trailing slash (except root)."""
    path = raw.strip() if raw and raw.strip() else default
    if not path.startswith("/"):
        path = "/" + path
    path = re.sub(r"/+", "/", path)
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def decode_aes_key(encoding_aes_key: str) -> bytes:
    """Decode the 43-character EncodingAESKey into the raw 32-byte AES key."""
    try:
        key = base64.b64decode(encoding_aes_key.strip().rstrip("=") + "=", validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"encoding AES key is not valid base64: {e}")
    if len(key) != AES_KEY_SIZE:
        raise ValueError(f"encoding AES key must decode to {AES_KEY_SIZE} bytes, got {len(key)}")
    return key


class BridgeConfig(BaseModel):
    """Process-wide credentials and endpoints. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    token: str
    encoding_aes_key: str
    hook_token: str
    callback_path: str = DEFAULT_CALLBACK_PATH
    hook_base: str = DEFAULT_HOOK_BASE
    hook_path: str = DEFAULT_HOOK_PATH
    forward_timeout_ms: int = DEFAULT_FORWARD_TIMEOUT_MS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    @field_validator("token", "hook_token")
    @classmethod
    def _required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("encoding_aes_key")
    @classmethod
    def _valid_key(cls, v: str) -> str:
        decode_aes_key(v)
        return v

    @field_validator("callback_path")
    @classmethod
    def _normalize_callback_path(cls, v: str) -> str:
        return normalize_path(v)

    @field_validator("forward_timeout_ms")
    @classmethod
    def _positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @property
    def aes_key(self) -> bytes:
        return decode_aes_key(self.encoding_aes_key)

    @property
    def forward_url(self) -> str:
        return f"{self.hook_base}{self.hook_path}"

    @property
    def forward_timeout(self) -> float:
        return self.forward_timeout_ms / 1000.0

    @classmethod
    def load(cls, **values) -> "BridgeConfig":
        """Build a config, turning validation failures into ``ConfigError``."""
        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigError(f"invalid bridge configuration: {problems}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "BridgeConfig":
        env = os.environ if environ is None else environ
        missing = [
            name for name in ("WECOM_CALLBACK_TOKEN", "WECOM_CALLBACK_AES_KEY", "OPENCLAW_HOOK_TOKEN")
            if not env.get(name)
        ]
        if missing:
            raise ConfigError(f"missing required env: {' / '.join(missing)}")

        try:
            port = int(env.get("WECOM_BRIDGE_PORT", DEFAULT_PORT))
            timeout_ms = int(env.get("WECOM_FORWARD_TIMEOUT_MS", DEFAULT_FORWARD_TIMEOUT_MS))
        except ValueError as e:
            raise ConfigError(f"invalid numeric setting: {e}")

        return cls.load(
            token=env["WECOM_CALLBACK_TOKEN"],
            encoding_aes_key=env["WECOM_CALLBACK_AES_KEY"],
            hook_token=env["OPENCLAW_HOOK_TOKEN"],
            callback_path=env.get("WECOM_CALLBACK_PATH", DEFAULT_CALLBACK_PATH),
            hook_base=env.get("OPENCLAW_HOOK_BASE", DEFAULT_HOOK_BASE),
            hook_path=env.get("OPENCLAW_HOOK_PATH", DEFAULT_HOOK_PATH),
            forward_timeout_ms=timeout_ms,
            host=env.get("WECOM_BRIDGE_HOST", DEFAULT_HOST),
            port=port,
        )
