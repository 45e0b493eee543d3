"""Parsing of the Daraja STK callback envelope."""
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CallbackItem(BaseModel):
    Name: str
    Value: Optional[Any] = None


class MetadataBlock(BaseModel):
    Item: List[CallbackItem] = Field(default_factory=list)


class StkCallback(BaseModel):
    model_config = ConfigDict(extra="ignore")

    MerchantRequestID: Optional[str] = None
    CheckoutRequestID: str
    ResultCode: int
    ResultDesc: str = ""
    CallbackMetadata: Optional[MetadataBlock] = None

    def metadata_value(self, name: str):
        if self.CallbackMetadata is None:
            return None
        for item in self.CallbackMetadata.Item:
            if item.Name == name:
                return item.Value
        return None


class CallbackBody(BaseModel):
    stkCallback: StkCallback


class CallbackEnvelope(BaseModel):
    Body: CallbackBody


def parse_callback(payload: dict) -> StkCallback:
    """Raises pydantic.ValidationError when the envelope is malformed."""
    return CallbackEnvelope.model_validate(payload).Body.stkCallback
