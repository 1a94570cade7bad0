# src/roomcast/schemas/ai.py
"""AI conversation Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class AiSendRequest(BaseModel):
    """Prompt submitted to an AI assistant conversation."""

    provider: str | None = Field(None, description="openai (default) or gemini")
    text: str | None = Field(None, description="Prompt text")
    image_data_url: str | None = Field(
        None,
        alias="imageDataUrl",
        description="Optional image as a data URL",
    )
    proxy_url: str | None = Field(None, alias="proxyUrl", description="Optional API proxy base URL")

    model_config = ConfigDict(populate_by_name=True)
