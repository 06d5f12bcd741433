"""Settings - LLM provider settings and configuration status.

Invariants:
    - The stored api key never leaves the server unmasked
    - PUT without api_key keeps the stored key
"""

from fastapi import APIRouter, Depends

from vibestudio.api.dependencies import get_settings_repo
from vibestudio.core.repository_protocols import SettingsRepository
from vibestudio.schemas.settings import (
    LLMSettingsResponse, LLMSettingsUpdate, LLMStatusResponse,
)
from vibestudio.services.llm_settings import (
    llm_status, read_llm_settings, save_llm_settings,
)

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


@router.get("/llm", response_model=LLMSettingsResponse)
async def get_llm_settings(
    repo: SettingsRepository = Depends(get_settings_repo),
):
    return await read_llm_settings(repo) or LLMSettingsResponse()


@router.put("/llm", response_model=LLMSettingsResponse)
async def put_llm_settings(
    body: LLMSettingsUpdate,
    repo: SettingsRepository = Depends(get_settings_repo),
):
    return await save_llm_settings(repo, body.model_dump(mode="json"))


@router.get("/llm-status", response_model=LLMStatusResponse)
async def get_llm_status(
    repo: SettingsRepository = Depends(get_settings_repo),
):
    """Whether a key is configured, and where it comes from."""
    return await llm_status(repo)
