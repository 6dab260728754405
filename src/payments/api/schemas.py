"""Pydantic response schemas for the Payments API.

The webhook body is read raw (the signature covers the exact bytes), so
only responses are modelled here.
"""

from pydantic import BaseModel


class WebhookAcknowledgementResponse(BaseModel):
    received: bool = True
    outcome: str
    order_id: str | None = None


class WebhookRejectionResponse(BaseModel):
    error: str
