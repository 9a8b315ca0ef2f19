"""Token usage to cost conversion."""

from __future__ import annotations

from dataclasses import dataclass

from .structures import TokenUsage

PER_MILLION = 1_000_000.0


@dataclass(frozen=True)
class CostRates:
    """USD prices per million tokens."""

    input_per_million: float = 0.05
    output_per_million: float = 0.20


DEFAULT_RATES = CostRates()


@dataclass(frozen=True)
class CostEstimate:
    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost

    def as_dict(self) -> dict:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "inputCost": self.input_cost,
            "outputCost": self.output_cost,
            "totalCost": self.total_cost,
        }


def estimate_cost_for_usage(
    usage: TokenUsage,
    rates: CostRates = DEFAULT_RATES,
) -> CostEstimate:
    """Price input and output tokens separately."""

    return CostEstimate(
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        input_cost=usage.input_tokens * rates.input_per_million / PER_MILLION,
        output_cost=usage.output_tokens * rates.output_per_million / PER_MILLION,
    )


def estimate_cost(tokens_used: int, rates: CostRates = DEFAULT_RATES) -> CostEstimate:
    """Price a single token total at both the input and the output rate.

    Used when the service only reports a combined count; the figure is an
    upper-bound approximation.
    """

    return estimate_cost_for_usage(
        TokenUsage(
            input_tokens=tokens_used,
            output_tokens=tokens_used,
            total_tokens=tokens_used,
        ),
        rates,
    )
