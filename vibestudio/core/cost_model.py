"""Cost Model - pure (model, token usage) -> USD estimate from a price table.

Invariants:
    - cost is never negative; zero usage costs exactly 0.0
    - For a fixed model, cost is monotonically non-decreasing in both token counts
    - Unknown models fail soft to 0.0 (cost display is advisory, not billing)

Design Decisions:
    - Prices per million tokens, prompt and completion priced separately
    - Dated model ids (gpt-4o-2024-08-06, claude-sonnet-4-20250514) resolve by
      longest known prefix so the table does not chase vendor releases
"""

from dataclasses import dataclass

from vibestudio.core.domain_types import ProviderName


@dataclass(frozen=True)
class TokenUsage:
    """Provider-reported token counts for one call or a whole run."""
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class ModelPrice:
    prompt_per_million: float
    completion_per_million: float


PRICE_TABLE: dict[str, dict[str, ModelPrice]] = {
    ProviderName.OPENAI.value: {
        "gpt-4o": ModelPrice(2.50, 10.00),
        "gpt-4o-mini": ModelPrice(0.15, 0.60),
        "gpt-4.1": ModelPrice(2.00, 8.00),
        "gpt-4.1-mini": ModelPrice(0.40, 1.60),
        "gpt-4.1-nano": ModelPrice(0.10, 0.40),
        "o3-mini": ModelPrice(1.10, 4.40),
        "o4-mini": ModelPrice(1.10, 4.40),
    },
    ProviderName.ANTHROPIC.value: {
        "claude-opus-4": ModelPrice(15.00, 75.00),
        "claude-sonnet-4": ModelPrice(3.00, 15.00),
        "claude-3-7-sonnet": ModelPrice(3.00, 15.00),
        "claude-3-5-sonnet": ModelPrice(3.00, 15.00),
        "claude-haiku-4-5": ModelPrice(1.00, 5.00),
        "claude-3-5-haiku": ModelPrice(0.80, 4.00),
    },
    ProviderName.GEMINI.value: {
        "gemini-2.5-pro": ModelPrice(1.25, 10.00),
        "gemini-2.5-flash": ModelPrice(0.30, 2.50),
        "gemini-2.0-flash": ModelPrice(0.10, 0.40),
    },
    ProviderName.DEEPSEEK.value: {
        "deepseek-chat": ModelPrice(0.27, 1.10),
        "deepseek-reasoner": ModelPrice(0.55, 2.19),
    },
}

# Used for the one-line change summary after a successful run
CHEAPEST_MODEL: dict[str, str] = {
    ProviderName.OPENAI.value: "gpt-4o-mini",
    ProviderName.ANTHROPIC.value: "claude-3-5-haiku-latest",
    ProviderName.GEMINI.value: "gemini-2.0-flash",
    ProviderName.DEEPSEEK.value: "deepseek-chat",
}


def find_price(model: str, provider: str | None = None) -> ModelPrice | None:
    """Exact id first, then the longest known prefix. Searches every provider
    when the given one is unknown or has no match."""
    key = (model or "").strip().lower()
    if not key:
        return None
    tables = [PRICE_TABLE[provider]] if provider in PRICE_TABLE else []
    tables += [t for p, t in PRICE_TABLE.items() if p != provider]
    for table in tables:
        if key in table:
            return table[key]
        matches = [m for m in table if key.startswith(m)]
        if matches:
            return table[max(matches, key=len)]
    return None


def calculate_cost(
    model: str, usage: TokenUsage, provider: str | None = None,
) -> float:
    """Estimated USD cost of `usage` on `model`. Pure, never raises."""
    price = find_price(model, provider)
    if price is None:
        return 0.0
    prompt = max(usage.prompt_tokens, 0)
    completion = max(usage.completion_tokens, 0)
    cost = (
        prompt * price.prompt_per_million
        + completion * price.completion_per_million
    ) / 1_000_000
    return round(cost, 6)


def cheapest_model(provider: str, fallback: str) -> str:
    return CHEAPEST_MODEL.get(provider, fallback)
