"""LLM Settings - resolve the active provider config, persisted record first.

Invariants:
    - The persisted `llm` record wins only when it carries an api key
    - Otherwise environment settings (config.py) are used as-is
    - No key from either source -> UnconfiguredError (never a half-built config)
    - Api keys leave the service masked; only the last 4 chars are visible
"""

from vibestudio.config import Settings, get_settings
from vibestudio.core.errors import UnconfiguredError
from vibestudio.core.repository_protocols import SettingsRepository
from vibestudio.infrastructure.providers.contract import LLMConfig

LLM_SETTINGS_KEY = "llm"
SOURCE_SETTINGS = "settings"
SOURCE_ENV = "env"

_MASK_CHAR = "•"


def mask_api_key(key: str | None) -> str:
    """'' for missing/short keys, else bullets + last four characters."""
    if not key or len(key) < 8:
        return ""
    return _MASK_CHAR * min(len(key) - 4, 20) + key[-4:]


def _from_env(settings: Settings) -> LLMConfig:
    return LLMConfig(
        provider=settings.llm_provider,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
    )


async def resolve_llm_config(
    repo: SettingsRepository, settings: Settings | None = None,
) -> tuple[LLMConfig, str]:
    """(config, source) for the next run. Raises UnconfiguredError."""
    settings = settings or get_settings()
    stored = await repo.get(LLM_SETTINGS_KEY) or {}
    if stored.get("api_key"):
        config = LLMConfig(
            provider=stored.get("provider") or settings.llm_provider,
            api_key=stored["api_key"],
            model=stored.get("model") or settings.llm_model,
            base_url=stored.get("base_url") or None,
        )
        return config, SOURCE_SETTINGS
    config = _from_env(settings)
    if not config.api_key:
        raise UnconfiguredError()
    return config, SOURCE_ENV


async def llm_status(
    repo: SettingsRepository, settings: Settings | None = None,
) -> dict:
    settings = settings or get_settings()
    stored = await repo.get(LLM_SETTINGS_KEY) or {}
    if stored.get("api_key"):
        return {"configured": True, "source": SOURCE_SETTINGS}
    if settings.llm_api_key:
        return {"configured": True, "source": SOURCE_ENV}
    return {"configured": False, "source": None}


async def read_llm_settings(repo: SettingsRepository) -> dict | None:
    """Stored record with the key masked, or None when nothing is saved."""
    stored = await repo.get(LLM_SETTINGS_KEY)
    if stored is None:
        return None
    return {
        **stored,
        "api_key": mask_api_key(stored.get("api_key")),
        "has_api_key": bool(stored.get("api_key")),
    }


async def save_llm_settings(repo: SettingsRepository, update: dict) -> dict:
    """Merge `update` over the stored record; an omitted/empty api_key keeps the old one."""
    stored = await repo.get(LLM_SETTINGS_KEY) or {}
    merged = {**stored}
    for field in ("provider", "model", "base_url"):
        if field in update:
            merged[field] = update[field]
    if update.get("api_key"):
        merged["api_key"] = update["api_key"]
    await repo.put(LLM_SETTINGS_KEY, merged)
    return await read_llm_settings(repo)
