from datetime import datetime, timezone
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field

EVENT_SOURCE = "wecom-callback"

# Fields copied from the decrypted message into the forwarded event
EVENT_FIELDS = (
    "MsgType",
    "Event",
    "FromUserName",
    "ToUserName",
    "CreateTime",
    "Content",
    "MsgId",
    "AgentID",
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CallbackQuery(BaseModel):
    msg_signature: str = ""
    timestamp: str = ""
    nonce: str = ""
    echostr: str = ""


class DecryptedEnvelope(BaseModel):
    message: str
    receive_id: str


class NormalizedEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    source: str = EVENT_SOURCE
    received_at: str = Field(default_factory=_utc_now, alias="receivedAt")
    receive_id: str = Field("", alias="receiveId")
    msg_type: str = Field("", alias="MsgType")
    event: str = Field("", alias="Event")
    from_user_name: str = Field("", alias="FromUserName")
    to_user_name: str = Field("", alias="ToUserName")
    create_time: str = Field("", alias="CreateTime")
    content: str = Field("", alias="Content")
    msg_id: str = Field("", alias="MsgId")
    agent_id: str = Field("", alias="AgentID")
    raw_xml: str = Field("", alias="rawXml")

    @classmethod
    def from_fields(cls, receive_id: str, fields: Dict[str, str], raw_xml: str) -> "NormalizedEvent":
        return cls(receiveId=receive_id, rawXml=raw_xml, **fields)

    def to_payload(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)
