"""Schema for the encrypted request body variant."""

from pydantic import BaseModel, ConfigDict, Field

from twist_api.core.envelope import EncryptedEnvelope


class EnvelopePayload(BaseModel):
    """Body carrying an encrypted envelope instead of plain fields."""

    encrypted_payload: EncryptedEnvelope = Field(..., alias="encryptedPayload")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")
