"""
AI Insight Agent for SpendWise

CRITICAL BOUNDARIES:

1. The agent only READS snapshots handed to it. It never touches the
   session state, the stores or the notification list.
2. Every result is advisory. Nothing in the bill scheduler or the alert
   rules depends on it.
3. Failures are SOFT. Network errors, blocked responses and malformed
   JSON all come back as None (or OTHER for a category guess) and are
   logged; they are never raised to the caller.

The LLM is a COMMENTATOR, not a BOOKKEEPER.
"""

import base64
import binascii
import json
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import google.generativeai as genai
from pydantic import ValidationError

from spendwise.audit import get_logger
from spendwise.config import GeminiSettings, get_settings
from spendwise.models.finance import (
    Bill,
    Budget,
    DetectedSubscription,
    ExpenseCategory,
    InsightData,
    PriceChange,
    ReceiptData,
    RedundantSubscription,
    SpendingAnomaly,
    SpendingPrediction,
    SubscriptionAnalysis,
    Transaction,
)

logger = get_logger(__name__)

# Only the most recent expenses are sent as context
MAX_CONTEXT_TRANSACTIONS = 50
MIN_TRANSACTIONS_FOR_SUBSCRIPTIONS = 5

RECEIPT_DATE_FORMATS = ["%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d"]

CATEGORY_CHOICES = [
    c.value for c in ExpenseCategory if c is not ExpenseCategory.SAVINGS
]


def extract_json(text: str) -> Optional[dict[str, Any]]:
    """Pull the outermost JSON object out of a model reply."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def _expense_line(t: Transaction, symbol: str) -> str:
    return f"{t.date.isoformat()}: {t.description} - {symbol}{t.amount} ({t.category})"


def weekly_comparison(
    transactions: list[Transaction],
    today: date,
) -> tuple[Decimal, Decimal]:
    """Expense totals for the last 7 days and the 7 days before that."""
    week_ago = today - timedelta(days=7)
    two_weeks_ago = today - timedelta(days=14)
    this_week = sum(
        (t.amount for t in transactions if t.is_expense and t.date >= week_ago),
        Decimal("0"),
    )
    last_week = sum(
        (
            t.amount
            for t in transactions
            if t.is_expense and two_weeks_ago <= t.date < week_ago
        ),
        Decimal("0"),
    )
    return this_week, last_week


# =============================================================================
# RESPONSE PARSING
# =============================================================================

def parse_insights(data: dict[str, Any]) -> InsightData:
    """Build InsightData from the model's camelCase JSON."""
    prediction = data.get("prediction") or {}
    return InsightData(
        summary=str(data.get("summary", "")),
        prediction=SpendingPrediction(
            next_month_total=float(prediction.get("nextMonthTotal", 0) or 0),
            reasoning=str(prediction.get("reasoning", "")),
            trend=prediction.get("trend", "stable"),
        ),
        anomalies=[
            SpendingAnomaly(
                title=a.get("title", ""),
                description=a.get("description", ""),
                severity=a.get("severity", "low"),
            )
            for a in data.get("anomalies") or []
        ],
        saving_tips=[str(tip) for tip in data.get("savingTips") or []],
    )


def parse_subscription_analysis(data: dict[str, Any]) -> SubscriptionAnalysis:
    return SubscriptionAnalysis(
        new_subscriptions=[
            DetectedSubscription(
                name=s.get("name", ""),
                amount=float(s.get("amount", 0) or 0),
                frequency=s.get("frequency", "monthly"),
                reason=s.get("reason", ""),
            )
            for s in data.get("newSubscriptions") or []
        ],
        price_changes=[
            PriceChange(
                name=p.get("name", ""),
                old_amount=float(p.get("oldAmount", 0) or 0),
                new_amount=float(p.get("newAmount", 0) or 0),
                change=float(p.get("change", 0) or 0),
            )
            for p in data.get("priceChanges") or []
        ],
        redundant=[
            RedundantSubscription(name=r.get("name", ""), reason=r.get("reason", ""))
            for r in data.get("redundant") or []
        ],
    )


def parse_category(text: str) -> ExpenseCategory:
    """Match a one-word reply against the category list, falling back to OTHER."""
    cleaned = text.strip().strip(".\"'").lower()
    for category in ExpenseCategory:
        if category.value.lower() == cleaned:
            return category
    return ExpenseCategory.OTHER


def _safe_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return None
    return amount if amount.is_finite() and amount >= 0 else None


def _safe_date(value) -> Optional[date]:
    if not isinstance(value, str):
        return None
    for fmt in RECEIPT_DATE_FORMATS:
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    return None


def parse_receipt_data(data: dict[str, Any]) -> ReceiptData:
    """
    Build ReceiptData from the model's JSON.

    Fields the model got wrong are dropped rather than failing the whole
    receipt; the user fills them in by hand.
    """
    merchant = data.get("merchant")
    category = data.get("category")
    return ReceiptData(
        amount=_safe_decimal(data.get("amount")),
        date=_safe_date(data.get("date")),
        merchant=str(merchant)[:200] if merchant else None,
        category=parse_category(category) if isinstance(category, str) else None,
    )


# =============================================================================
# AGENT
# =============================================================================

class InsightAgent:
    """
    Gemini-backed spending commentator.

    RESPONSIBILITIES:
    - Summarize recent spending and predict next month's total
    - Spot recurring payments that are not tracked as bills yet
    - Guess an expense category from a description
    - Read amount, date, merchant and category off a receipt photo

    A `model` can be injected for tests; otherwise one is configured
    from GeminiSettings.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Any = None,
        currency_symbol: str = "₹",
    ):
        self._currency = currency_symbol
        if model is not None:
            self._model = model
            return
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def _ask(self, contents: Any) -> Optional[str]:
        try:
            response = await self._model.generate_content_async(contents)
            return response.text
        except Exception as e:
            # Any SDK or transport failure is soft
            logger.warning("ai_request_failed", error=str(e))
            return None

    async def get_spending_insights(
        self,
        transactions: list[Transaction],
        budgets: list[Budget],
        today: Optional[date] = None,
    ) -> Optional[InsightData]:
        """
        Summarize spending habits.

        Returns None when there are no transactions or the model reply
        cannot be used.
        """
        if not transactions:
            return None

        today = today or date.today()
        expenses = sorted(
            (t for t in transactions if t.is_expense),
            key=lambda t: t.date,
            reverse=True,
        )[:MAX_CONTEXT_TRANSACTIONS]

        this_week, last_week = weekly_comparison(transactions, today)
        expense_summary = "\n".join(_expense_line(t, self._currency) for t in expenses)
        budget_summary = "\n".join(
            f"{b.category}: {self._currency}{b.limit}/{b.period.value}" for b in budgets
        )

        prompt = f"""You are a smart financial assistant. Analyze these transactions and budgets.

Context:
This week total: {self._currency}{this_week}. Last week total: {self._currency}{last_week}.

Budgets:
{budget_summary or "No specific budgets set."}

Recent Transactions (last {MAX_CONTEXT_TRANSACTIONS}):
{expense_summary}

Tasks:
1. summary: compare spending to last week or month.
2. prediction: predict total spending for the next 30 days
   ({{"nextMonthTotal": number, "reasoning": string, "trend": "increasing"|"decreasing"|"stable"}}).
3. anomalies: unusually high transactions, double charges or category spikes
   ([{{"title": string, "description": string, "severity": "high"|"medium"|"low"}}]).
4. savingTips: three actionable saving tips (list of strings).

Respond with ONLY the JSON object, no explanation."""

        text = await self._ask(prompt)
        data = extract_json(text) if text else None
        if data is None:
            return None
        try:
            return parse_insights(data)
        except (ValidationError, TypeError, ValueError, AttributeError) as e:
            logger.warning("ai_insights_unparseable", error=str(e))
            return None

    async def analyze_subscriptions(
        self,
        transactions: list[Transaction],
        bills: list[Bill],
    ) -> Optional[SubscriptionAnalysis]:
        """
        Look for untracked subscriptions, price rises and overlap.

        Needs at least five transactions to say anything useful.
        """
        if len(transactions) < MIN_TRANSACTIONS_FOR_SUBSCRIPTIONS:
            return None

        expenses = "\n".join(
            f"{t.date.isoformat()}: {t.description} ({self._currency}{t.amount})"
            for t in transactions
            if t.is_expense
        )
        tracked = ", ".join(b.name for b in bills)

        prompt = f"""Analyze these expense transactions for subscriptions and recurring bills.

Transactions:
{expenses}

Existing Tracked Bills:
{tracked or "None"}

Tasks:
1. newSubscriptions: recurring payments NOT in the tracked bills list
   ([{{"name": string, "amount": number, "frequency": string, "reason": string}}]).
2. priceChanges: services whose latest payment is HIGHER than the previous one
   ([{{"name": string, "oldAmount": number, "newAmount": number, "change": number}}]).
3. redundant: overlapping or unnecessary subscriptions
   ([{{"name": string, "reason": string}}]).

Respond with ONLY the JSON object, no explanation."""

        text = await self._ask(prompt)
        data = extract_json(text) if text else None
        if data is None:
            return None
        try:
            return parse_subscription_analysis(data)
        except (ValidationError, TypeError, ValueError, AttributeError) as e:
            logger.warning("ai_subscriptions_unparseable", error=str(e))
            return None

    async def suggest_category(self, description: str) -> Optional[ExpenseCategory]:
        """Guess an expense category. None if the model could not be reached."""
        prompt = (
            f'Categorize the expense description "{description}" into exactly one of '
            f"these categories: {', '.join(CATEGORY_CHOICES)}. "
            "Return only the category name."
        )
        text = await self._ask(prompt)
        if text is None:
            return None
        return parse_category(text)

    async def parse_receipt(
        self,
        image_b64: str,
        mime_type: str = "image/jpeg",
    ) -> Optional[ReceiptData]:
        """
        Extract receipt fields from a base64-encoded image.

        Returns None when the image cannot be decoded, the model fails,
        or nothing usable was read off the receipt.
        """
        try:
            image_bytes = base64.b64decode(image_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning("receipt_image_undecodable", error=str(e))
            return None
        if not image_bytes:
            return None

        prompt = (
            "Analyze this receipt image. Extract the total amount, the date "
            "(YYYY-MM-DD) and the merchant name. Also pick the most likely "
            f"category from this list: {', '.join(CATEGORY_CHOICES)}.\n"
            'Respond with ONLY a JSON object: {"amount": number, "date": string, '
            '"merchant": string, "category": string}'
        )
        text = await self._ask([{"mime_type": mime_type, "data": image_bytes}, prompt])
        data = extract_json(text) if text else None
        if data is None:
            return None
        try:
            receipt = parse_receipt_data(data)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("receipt_unparseable", error=str(e))
            return None

        logger.info(
            "receipt_parsed",
            has_amount=receipt.amount is not None,
            has_date=receipt.date is not None,
        )
        return None if receipt.is_empty else receipt
