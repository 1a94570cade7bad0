# src/roomcast/schemas/message.py
"""Message-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class MessageCreate(BaseModel):
    """Schema for sending a message to a global, favorite or dm conversation."""

    type: str = Field("", description="Conversation kind: global, favorite or dm")
    target: str | None = Field(None, description="Other participant for dm conversations")
    content: str | None = Field(None, description="Message text")
    attachment_data_url: str | None = Field(
        None,
        alias="attachmentDataUrl",
        description="Attachment as a data:<mime>;base64,<payload> URL",
    )
    attachment_name: str | None = Field(None, alias="attachmentName")
    attachment_mime_type: str | None = Field(None, alias="attachmentMimeType")

    model_config = ConfigDict(populate_by_name=True)
