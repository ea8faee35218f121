"""AI Agents package."""

from spendwise.agents.ai_agents import (
    InsightAgent,
    extract_json,
    parse_category,
    parse_insights,
    parse_receipt_data,
    parse_subscription_analysis,
)

__all__ = [
    "InsightAgent",
    "extract_json",
    "parse_category",
    "parse_insights",
    "parse_receipt_data",
    "parse_subscription_analysis",
]
