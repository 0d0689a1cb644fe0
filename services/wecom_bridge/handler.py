import json
import logging

from services.wecom_bridge.config import BridgeConfig
from services.wecom_bridge.envelope import EnvelopeCodec
from services.wecom_bridge.errors import AuthError, FormatError
from services.wecom_bridge.extract import extract, tag_value
from services.wecom_bridge.forwarder import Forwarder
from services.wecom_bridge.models import EVENT_FIELDS, CallbackQuery, NormalizedEvent
from services.wecom_bridge.signature import verify_signature

logger = logging.getLogger(__name__)

LIVENESS_BODY = "wecom bridge ok"
ACK_BODY = "success"


class CallbackHandler:
    """Verification, decryption and forwarding for one WeCom callback endpoint.

    Holds only immutable credentials; every call is independent.
    """

    def __init__(self, config: BridgeConfig, forwarder: Forwarder):
        self._token = config.token
        self._codec = EnvelopeCodec(config.aes_key)
        self._forwarder = forwarder

    def _check_signature(self, query: CallbackQuery, encrypt: str) -> None:
        if not verify_signature(self._token, query.timestamp, query.nonce, encrypt, query.msg_signature):
            logger.info(json.dumps({
                "event": "wecom_bridge.callback.rejected",
                "reason": "signature_invalid" if query.msg_signature else "signature_missing",
                "timestamp": query.timestamp,
                "nonce": query.nonce
            }))
            raise AuthError()

    def handshake(self, query: CallbackQuery) -> str:
        """URL verification: echo back the decrypted ``echostr``."""
        if not query.echostr:
            return LIVENESS_BODY

        self._check_signature(query, query.echostr)
        envelope = self._codec.decrypt(query.echostr)

        logger.info(json.dumps({
            "event": "wecom_bridge.handshake.success",
            "receive_id": envelope.receive_id
        }))
        return envelope.message

    async def deliver(self, query: CallbackQuery, body: str) -> str:
        """Event push: verify, decrypt, normalize and forward. Forward failures are not surfaced."""
        encrypted = tag_value(body, "Encrypt")
        if not encrypted:
            logger.info(json.dumps({
                "event": "wecom_bridge.callback.rejected",
                "reason": "encrypt_missing",
                "body_length": len(body)
            }))
            raise FormatError("Missing Encrypt", error="encrypt_missing")

        self._check_signature(query, encrypted)
        envelope = self._codec.decrypt(encrypted)

        fields = extract(envelope.message, EVENT_FIELDS)
        event = NormalizedEvent.from_fields(envelope.receive_id, fields, envelope.message)

        logger.info(json.dumps({
            "event": "wecom_bridge.callback.received",
            "receive_id": event.receive_id,
            "msg_type": event.msg_type,
            "event_name": event.event,
            "msg_id": event.msg_id,
            "agent_id": event.agent_id
        }))

        await self._forwarder.forward(event)
        return ACK_BODY
