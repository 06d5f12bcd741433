"""Cost Model tests - price lookup and cost properties.

Tests cover:
    - Zero usage costs exactly 0.0
    - Known model prices prompt and completion tokens separately
    - Dated model ids resolve by longest known prefix
    - Unknown models fail soft to 0.0
    - Cost is non-negative and monotonically non-decreasing in token counts
    - Cheapest model per provider, with fallback for unknown providers
"""

import pytest

from vibestudio.core.cost_model import (
    TokenUsage, calculate_cost, cheapest_model, find_price,
)


def test_zero_usage_costs_zero():
    assert calculate_cost("gpt-4o", TokenUsage(), "openai") == 0.0


def test_known_model_prices_both_token_kinds():
    """gpt-4o: $2.50 / $10.00 per million."""
    usage = TokenUsage(prompt_tokens=1_000_000, completion_tokens=1_000_000)
    assert calculate_cost("gpt-4o", usage, "openai") == pytest.approx(12.50)


def test_dated_model_resolves_by_prefix():
    price = find_price("claude-sonnet-4-20250514", "anthropic")
    assert price is not None
    assert price.prompt_per_million == 3.00


def test_longest_prefix_wins():
    """gpt-4o-mini-2024-07-18 must not be priced as gpt-4o."""
    mini = find_price("gpt-4o-mini-2024-07-18", "openai")
    assert mini.prompt_per_million == 0.15


def test_model_found_under_other_provider():
    """Provider mismatch still prices a known model."""
    assert find_price("deepseek-chat", "openai") is not None


def test_unknown_model_costs_zero():
    usage = TokenUsage(prompt_tokens=5000, completion_tokens=5000)
    assert calculate_cost("my-local-llama", usage, "openai") == 0.0
    assert calculate_cost("", usage) == 0.0


def test_negative_counts_clamped():
    usage = TokenUsage(prompt_tokens=-100, completion_tokens=-5)
    assert calculate_cost("gpt-4o", usage, "openai") == 0.0


@pytest.mark.parametrize("model", ["gpt-4o", "claude-3-5-haiku-latest", "gemini-2.5-pro"])
def test_cost_monotonic_in_tokens(model):
    previous = 0.0
    for n in (0, 1, 10, 1_000, 50_000, 2_000_000):
        cost = calculate_cost(model, TokenUsage(n, n))
        assert cost >= 0.0
        assert cost >= previous
        previous = cost


def test_token_usage_addition():
    total = TokenUsage(10, 5) + TokenUsage(1, 2)
    assert total == TokenUsage(11, 7)
    assert total.total_tokens == 18


def test_cheapest_model_per_provider():
    assert cheapest_model("openai", "gpt-4o") == "gpt-4o-mini"
    assert cheapest_model("anthropic", "x").startswith("claude-3-5-haiku")
    assert cheapest_model("unknown", "fallback-model") == "fallback-model"
