"""Settings Schemas - LLM provider settings at the API boundary.

Invariants:
    - api_key is write-only: responses only ever carry the masked form
    - provider restricted to the supported vendors
"""

from pydantic import BaseModel, Field

from vibestudio.core.domain_types import ProviderName


class LLMSettingsUpdate(BaseModel):
    """PUT body. Omitted or empty api_key keeps the stored key."""
    provider: ProviderName
    model: str = Field(min_length=1, max_length=200)
    api_key: str | None = Field(None, max_length=500)
    base_url: str | None = Field(None, max_length=500)


class LLMSettingsResponse(BaseModel):
    provider: str | None = None
    model: str | None = None
    base_url: str | None = None
    api_key: str = ""
    has_api_key: bool = False


class LLMStatusResponse(BaseModel):
    configured: bool
    source: str | None = None
