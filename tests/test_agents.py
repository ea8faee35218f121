"""
Tests for the AI insight agent.

The Gemini model is replaced with a fake; no network calls are made.
"""

import asyncio
import base64
import json
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from spendwise.agents import InsightAgent, extract_json, parse_category
from spendwise.models import Bill, Budget, ExpenseCategory, Transaction


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.reply)


def expenses(n: int) -> list[Transaction]:
    return [
        Transaction(amount=Decimal("100"), description=f"Item {i}", date=date(2024, 5, 1 + i))
        for i in range(n)
    ]


class TestParsing:

    def test_extract_json_from_fenced_reply(self):
        text = 'Here you go:\n```json\n{"summary": "ok"}\n```'
        assert extract_json(text) == {"summary": "ok"}

    def test_extract_json_garbage(self):
        assert extract_json("no json here") is None
        assert extract_json("{broken") is None

    def test_parse_category(self):
        assert parse_category(" Food.\n") == ExpenseCategory.FOOD
        assert parse_category("transport") == ExpenseCategory.TRANSPORT
        assert parse_category("Groceries and more") == ExpenseCategory.OTHER


class TestSpendingInsights:
    """Tests for get_spending_insights."""

    def test_no_transactions_returns_none_without_calling_model(self):
        model = FakeModel(reply="{}")
        agent = InsightAgent(model=model)
        assert asyncio.run(agent.get_spending_insights([], [])) is None
        assert model.prompts == []

    def test_parses_reply(self):
        reply = json.dumps(
            {
                "summary": "You spent more on food.",
                "prediction": {"nextMonthTotal": 12000, "reasoning": "Trend", "trend": "increasing"},
                "anomalies": [{"title": "Double charge", "description": "Two taxis", "severity": "high"}],
                "savingTips": ["Cook at home"],
            }
        )
        agent = InsightAgent(model=FakeModel(reply=reply))
        budgets = [Budget(category="Food", limit=Decimal("5000"))]
        insights = asyncio.run(
            agent.get_spending_insights(expenses(3), budgets, today=date(2024, 5, 10))
        )
        assert insights.summary == "You spent more on food."
        assert insights.prediction.next_month_total == 12000
        assert insights.prediction.trend == "increasing"
        assert insights.anomalies[0].severity == "high"
        assert insights.saving_tips == ["Cook at home"]

    def test_prompt_includes_budgets(self):
        model = FakeModel(reply="{}")
        agent = InsightAgent(model=model)
        budgets = [Budget(category="Food", limit=Decimal("5000"))]
        asyncio.run(agent.get_spending_insights(expenses(1), budgets, today=date(2024, 5, 10)))
        assert "Food: ₹5000/monthly" in model.prompts[0]

    def test_model_error_is_soft(self):
        agent = InsightAgent(model=FakeModel(error=RuntimeError("quota")))
        assert asyncio.run(agent.get_spending_insights(expenses(2), [])) is None

    def test_invalid_shape_is_soft(self):
        reply = json.dumps({"summary": "x", "prediction": {"trend": "sideways"}})
        agent = InsightAgent(model=FakeModel(reply=reply))
        assert asyncio.run(agent.get_spending_insights(expenses(2), [])) is None


class TestSubscriptionAnalysis:

    def test_needs_five_transactions(self):
        model = FakeModel(reply="{}")
        agent = InsightAgent(model=model)
        assert asyncio.run(agent.analyze_subscriptions(expenses(4), [])) is None
        assert model.prompts == []

    def test_parses_reply(self):
        reply = json.dumps(
            {
                "newSubscriptions": [{"name": "Spotify", "amount": 119, "frequency": "monthly", "reason": "Seen 3x"}],
                "priceChanges": [{"name": "Netflix", "oldAmount": 499, "newAmount": 649, "change": 150}],
                "redundant": [],
            }
        )
        model = FakeModel(reply=reply)
        agent = InsightAgent(model=model)
        bills = [Bill(name="Netflix", amount=Decimal("649"), due_day=5)]
        analysis = asyncio.run(agent.analyze_subscriptions(expenses(5), bills))
        assert analysis.new_subscriptions[0].name == "Spotify"
        assert analysis.price_changes[0].change == 150
        assert analysis.redundant == []
        assert "Netflix" in model.prompts[0]


class TestSuggestCategory:

    def test_suggestion(self):
        agent = InsightAgent(model=FakeModel(reply="Travel"))
        assert asyncio.run(agent.suggest_category("Flight to Goa")) == ExpenseCategory.TRAVEL

    def test_unknown_reply_is_other(self):
        agent = InsightAgent(model=FakeModel(reply="Pets"))
        assert asyncio.run(agent.suggest_category("Dog food")) == ExpenseCategory.OTHER

    def test_failure_is_none(self):
        agent = InsightAgent(model=FakeModel(error=TimeoutError()))
        assert asyncio.run(agent.suggest_category("Dog food")) is None


RECEIPT_B64 = base64.b64encode(b"\xff\xd8\xff\xe0 fake jpeg bytes").decode("ascii")


class TestReceiptScanning:
    """Tests for parse_receipt."""

    def test_parses_reply_and_sends_image(self):
        reply = json.dumps(
            {"amount": 845.5, "date": "2024-05-12", "merchant": "Fresh Mart", "category": "Shopping"}
        )
        model = FakeModel(reply=reply)
        agent = InsightAgent(model=model)

        receipt = asyncio.run(agent.parse_receipt(RECEIPT_B64, "image/png"))

        assert receipt.amount == Decimal("845.50")
        assert receipt.date == date(2024, 5, 12)
        assert receipt.merchant == "Fresh Mart"
        assert receipt.category == ExpenseCategory.SHOPPING
        image, prompt = model.prompts[0]
        assert image == {"mime_type": "image/png", "data": base64.b64decode(RECEIPT_B64)}
        assert "receipt" in prompt

    def test_bad_fields_are_dropped(self):
        reply = json.dumps({"amount": "about forty", "date": "last Tuesday", "merchant": "Cafe"})
        agent = InsightAgent(model=FakeModel(reply=reply))
        receipt = asyncio.run(agent.parse_receipt(RECEIPT_B64))
        assert receipt.amount is None
        assert receipt.date is None
        assert receipt.merchant == "Cafe"
        assert receipt.category is None

    def test_unknown_category_is_other(self):
        reply = json.dumps({"amount": 10, "merchant": "Vet", "category": "Pets"})
        agent = InsightAgent(model=FakeModel(reply=reply))
        assert asyncio.run(agent.parse_receipt(RECEIPT_B64)).category == ExpenseCategory.OTHER

    def test_nothing_read_is_none(self):
        agent = InsightAgent(model=FakeModel(reply="{}"))
        assert asyncio.run(agent.parse_receipt(RECEIPT_B64)) is None

    def test_model_error_is_soft(self):
        agent = InsightAgent(model=FakeModel(error=RuntimeError("blocked")))
        assert asyncio.run(agent.parse_receipt(RECEIPT_B64)) is None

    def test_undecodable_image_never_reaches_model(self):
        model = FakeModel(reply="{}")
        agent = InsightAgent(model=model)
        assert asyncio.run(agent.parse_receipt("not base64!")) is None
        assert model.prompts == []
