from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class LeaseState(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    RELEASED = "released"


class ReceivedMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    receipt_handle: str = Field(alias="ReceiptHandle")
    body: str = Field(alias="Body")
    message_id: Optional[str] = Field(default=None, alias="MessageId")
    md5_of_body: Optional[str] = Field(default=None, alias="MD5OfBody")


class ReceiveMessageResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: Optional[List[ReceivedMessage]] = None


class ReceiveMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    result: Optional[ReceiveMessageResult] = Field(
        default=None, alias="ReceiveMessageResult"
    )


class ReceiveEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    response: Optional[ReceiveMessageResponse] = Field(
        default=None, alias="ReceiveMessageResponse"
    )

    def messages(self) -> List[ReceivedMessage]:
        if self.response is None or self.response.result is None:
            return []
        return self.response.result.messages or []


class ServiceErrorDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    code: Optional[str] = Field(default=None, alias="Code")
    message: str = Field(default="Unknown error", alias="Message")
