"""
Integration tests for SessionController.

All stores are in-memory; async paths run with asyncio.run.
"""

import asyncio
import pytest
from datetime import date, datetime
from decimal import Decimal

from spendwise.audit import AuditLogger
from spendwise.models import (
    AuditEventType,
    Bill,
    Budget,
    BudgetPeriod,
    ExpenseCategory,
    FilterConfig,
    Goal,
    InsightData,
    NotificationType,
    ReceiptData,
    Transaction,
    TransactionType,
)
from spendwise.orchestrator import SessionController, SessionNotLoaded
from spendwise.services.storage import (
    InMemoryAuditStorage,
    InMemoryCollectionStorage,
    InMemoryPreferenceStorage,
    InMemoryTransactionStorage,
    StorageError,
)

MAY_16 = datetime(2024, 5, 16, 9, 0)


class FailingTransactionStorage(InMemoryTransactionStorage):
    """Every write fails, as if the server were unreachable."""

    async def create_transaction(self, transaction):
        raise StorageError("offline")

    async def update_transaction(self, transaction):
        raise StorageError("offline")

    async def delete_transaction(self, transaction_id):
        raise StorageError("offline")


class UnreachableCollection(InMemoryCollectionStorage):

    async def list_all(self):
        raise StorageError("offline")


class Stores:
    """Bundle of in-memory stores shared across controller instances."""

    def __init__(self, transactions=None, bills=None, goals=None, budgets=None):
        self.transactions = InMemoryTransactionStorage(transactions)
        self.bills = InMemoryCollectionStorage(bills)
        self.goals = InMemoryCollectionStorage(goals)
        self.budgets = InMemoryCollectionStorage(budgets)
        self.notifications = InMemoryCollectionStorage()
        self.filters = InMemoryCollectionStorage()
        self.preferences = InMemoryPreferenceStorage()
        self.audit = InMemoryAuditStorage()

    def controller(self, now: datetime = MAY_16, **overrides) -> SessionController:
        kwargs = dict(
            transaction_store=self.transactions,
            bill_store=self.bills,
            goal_store=self.goals,
            budget_store=self.budgets,
            notification_store=self.notifications,
            filter_store=self.filters,
            preference_store=self.preferences,
            audit_logger=AuditLogger(self.audit),
            clock=lambda: now,
        )
        kwargs.update(overrides)
        return SessionController(**kwargs)

    def audit_types(self) -> list[AuditEventType]:
        events = asyncio.run(self.audit.get_recent_events(limit=1000))
        return [e.event_type for e in events]


def loaded(stores: Stores, **overrides) -> SessionController:
    controller = stores.controller(**overrides)
    asyncio.run(controller.load())
    return controller


def titles(controller: SessionController) -> list[str]:
    return [n.title for n in controller.state.notifications]


def expense(amount, category="Food", **kwargs):
    return Transaction(
        amount=Decimal(str(amount)),
        category=category,
        description=kwargs.pop("description", "Spend"),
        date=kwargs.pop("date", date(2024, 5, 16)),
        **kwargs,
    )


def salary(amount="50000"):
    return Transaction(
        type=TransactionType.INCOME,
        amount=Decimal(amount),
        category="Salary",
        description="Salary",
        date=date(2024, 5, 1),
    )


class TestLoad:
    """Tests for the session load sequence."""

    def test_operations_require_load(self):
        controller = Stores().controller()
        with pytest.raises(SessionNotLoaded):
            asyncio.run(controller.add_transaction(expense(10)))

    def test_load_populates_state(self):
        goal = Goal(name="Bike", target_amount=Decimal("500"))
        stores = Stores(transactions=[salary()], goals=[goal])
        asyncio.run(stores.preferences.set_value("expected_income", "60000"))
        controller = loaded(stores)

        assert controller.is_loaded
        assert len(controller.state.transactions) == 1
        assert controller.state.goals == [goal]
        assert controller.state.expected_income == Decimal("60000")
        assert AuditEventType.SESSION_LOADED in stores.audit_types()

    def test_netflix_auto_pay_on_load(self):
        bill = Bill(name="Netflix", amount=Decimal("500"), due_day=15, auto_pay=True)
        stores = Stores(bills=[bill])
        controller = loaded(stores)

        assert len(controller.state.transactions) == 1
        tx = controller.state.transactions[0]
        assert tx.description == "Netflix (Auto-Pay)"
        assert tx.bill_id == bill.id
        assert controller.state.bills[0].last_paid_date == date(2024, 5, 16)
        assert titles(controller) == ["Bill Paid Automatically"]
        assert controller.state.notifications[0].type == NotificationType.INFO

        # Persisted as one batch
        assert len(asyncio.run(stores.transactions.list_transactions())) == 1
        assert stores.bills.write_count == 1
        assert asyncio.run(stores.bills.list_all())[0].last_paid_date == date(2024, 5, 16)
        assert len(asyncio.run(stores.notifications.list_all())) == 1
        assert AuditEventType.BILL_AUTO_PAID in stores.audit_types()

    def test_reload_same_month_does_not_pay_twice(self):
        bill = Bill(name="Netflix", amount=Decimal("500"), due_day=15, auto_pay=True)
        stores = Stores(bills=[bill])
        loaded(stores)
        second = loaded(stores, clock=lambda: datetime(2024, 5, 20, 8, 0))

        assert len(second.state.transactions) == 1
        assert stores.bills.write_count == 1

    def test_auto_pay_transactions_are_evaluated(self):
        bill = Bill(
            name="Netflix",
            amount=Decimal("500"),
            due_day=15,
            auto_pay=True,
            category="Entertainment",
        )
        budget = Budget(category="Entertainment", limit=Decimal("400"))
        controller = loaded(Stores(transactions=[salary()], bills=[bill], budgets=[budget]))
        assert titles(controller) == ["Budget Exceeded", "Bill Paid Automatically"]

    def test_batch_evaluated_in_bill_order(self):
        """The second bill sees the first bill's payment already in the ledger."""
        bills = [
            Bill(name="Gym", amount=Decimal("300"), due_day=1, auto_pay=True, category="Health"),
            Bill(name="Yoga", amount=Decimal("300"), due_day=2, auto_pay=True, category="Health"),
        ]
        budget = Budget(category="Health", limit=Decimal("500"))
        controller = loaded(Stores(transactions=[salary()], bills=bills, budgets=[budget]))
        assert titles(controller).count("Budget Exceeded") == 1
        assert len(controller.state.transactions) == 3

    def test_due_soon_reminder_on_load(self):
        bill = Bill(name="Rent", amount=Decimal("15000"), due_day=18)
        controller = loaded(Stores(bills=[bill]))
        assert titles(controller) == ["Bill Due Soon"]
        assert controller.state.transactions == []

    def test_load_failure_degrades_to_alert(self):
        stores = Stores()
        controller = stores.controller(bill_store=UnreachableCollection())
        asyncio.run(controller.load())

        assert controller.is_loaded
        assert titles(controller) == ["Connection Error"]
        assert controller.state.notifications[0].type == NotificationType.ALERT
        assert AuditEventType.PERSISTENCE_FAILED in stores.audit_types()

        # Session still usable
        asyncio.run(controller.add_transaction(salary()))
        assert len(controller.state.transactions) == 1


class TestTransactionEvents:
    """Tests for create / edit / delete routing."""

    def test_add_income(self):
        stores = Stores()
        controller = loaded(stores)
        asyncio.run(controller.add_transaction(salary("1000")))

        assert titles(controller) == ["Income Received"]
        assert len(asyncio.run(stores.transactions.list_transactions())) == 1
        assert len(asyncio.run(stores.notifications.list_all())) == 1
        assert AuditEventType.TRANSACTION_CREATED in stores.audit_types()

    def test_goal_contribution_and_halfway(self):
        goal = Goal(name="Bike", target_amount=Decimal("1000"), current_amount=Decimal("400"))
        stores = Stores(transactions=[salary()], goals=[goal])
        controller = loaded(stores)

        asyncio.run(controller.add_transaction(expense(200, category="Savings", goal_id=goal.id)))
        asyncio.run(controller.add_transaction(expense(100, category="Savings", goal_id=goal.id)))

        assert controller.state.goals[0].current_amount == Decimal("700")
        assert titles(controller).count("Halfway There!") == 1
        assert asyncio.run(stores.goals.list_all())[0].current_amount == Decimal("700")

    def test_delete_floors_goal_and_repeat_is_noop(self):
        goal = Goal(name="Bike", target_amount=Decimal("1000"), current_amount=Decimal("500"))
        linked = expense(200, category="Savings", goal_id=goal.id)
        stores = Stores(transactions=[salary(), linked], goals=[goal])
        controller = loaded(stores)

        assert asyncio.run(controller.delete_transaction(linked.id)) is True
        assert controller.state.goals[0].current_amount == Decimal("300")

        assert asyncio.run(controller.delete_transaction(linked.id)) is False
        assert controller.state.goals[0].current_amount == Decimal("300")
        assert len(asyncio.run(stores.transactions.list_transactions())) == 1

    def test_update_reconciles_goal(self):
        goal = Goal(name="Bike", target_amount=Decimal("1000"), current_amount=Decimal("200"))
        linked = expense(200, category="Savings", goal_id=goal.id)
        stores = Stores(transactions=[salary(), linked], goals=[goal])
        controller = loaded(stores)

        edited = linked.model_copy(update={"amount": Decimal("700")})
        assert asyncio.run(controller.update_transaction(edited)) == edited

        assert controller.state.goals[0].current_amount == Decimal("700")
        assert titles(controller) == ["Transaction Updated", "Halfway There!"]
        stored = asyncio.run(stores.transactions.list_transactions())
        assert {t.amount for t in stored} == {Decimal("50000"), Decimal("700")}

    def test_update_does_not_double_count_budget(self):
        """The pre-edit version is replaced, not added on top."""
        budget = Budget(category="Food", limit=Decimal("1000"))
        original = expense(900)
        controller = loaded(Stores(transactions=[salary(), original], budgets=[budget]))

        edited = original.model_copy(update={"amount": Decimal("950")})
        asyncio.run(controller.update_transaction(edited))
        assert "Budget Exceeded" not in titles(controller)

    def test_description_edit_does_not_repeat_budget_alert(self):
        budget = Budget(category="Food", limit=Decimal("1000"))
        controller = loaded(Stores(transactions=[salary()], budgets=[budget]))

        tx = asyncio.run(controller.add_transaction(expense(1100)))
        edited = tx.model_copy(update={"description": "Team dinner"})
        asyncio.run(controller.update_transaction(edited))

        assert titles(controller).count("Budget Exceeded") == 1
        assert titles(controller)[0] == "Transaction Updated"

    def test_description_edit_does_not_repeat_goal_milestone(self):
        goal = Goal(name="Bike", target_amount=Decimal("1000"), current_amount=Decimal("400"))
        controller = loaded(Stores(transactions=[salary()], goals=[goal]))

        tx = asyncio.run(controller.deposit_to_goal(goal.id, Decimal("200")))
        edited = tx.model_copy(update={"description": "Bike fund"})
        asyncio.run(controller.update_transaction(edited))

        assert titles(controller) == ["Transaction Updated", "Halfway There!"]
        assert controller.state.goals[0].current_amount == Decimal("600")

    def test_income_edit_does_not_repeat_confirmation(self):
        controller = loaded(Stores())
        tx = asyncio.run(controller.add_transaction(salary("5000")))

        edited = tx.model_copy(update={"description": "May salary"})
        asyncio.run(controller.update_transaction(edited))

        assert titles(controller) == ["Transaction Updated", "Income Received"]

    def test_edit_below_balance_threshold_does_not_repeat_warning(self):
        controller = loaded(Stores(transactions=[salary("3000")]))
        tx = asyncio.run(controller.add_transaction(expense(1500)))

        edited = tx.model_copy(update={"amount": Decimal("1800")})
        asyncio.run(controller.update_transaction(edited))

        assert titles(controller).count("Low Balance Warning") == 1

    def test_failed_update_has_no_success_notification(self):
        tx = expense(10)
        stores = Stores()
        controller = stores.controller(transaction_store=FailingTransactionStorage([tx]))
        asyncio.run(controller.load())

        edited = tx.model_copy(update={"description": "Coffee"})
        assert asyncio.run(controller.update_transaction(edited)) == edited

        assert controller.state.transactions == [edited]
        assert titles(controller) == ["Error"]
        assert controller.state.notifications[0].message == "Failed to update transaction on server."
        assert AuditEventType.TRANSACTION_UPDATED not in stores.audit_types()

    def test_update_unknown_is_ignored(self):
        controller = loaded(Stores())
        assert asyncio.run(controller.update_transaction(expense(10))) is None
        assert controller.state.notifications == []

    def test_persistence_failure_keeps_state_and_alerts(self):
        stores = Stores()
        controller = stores.controller(transaction_store=FailingTransactionStorage())
        asyncio.run(controller.load())

        tx = salary("1000")
        asyncio.run(controller.add_transaction(tx))

        assert controller.state.transactions == [tx]
        assert titles(controller) == ["Error", "Income Received"]
        error = controller.state.notifications[0]
        assert error.type == NotificationType.ALERT
        assert error.message == "Failed to save transaction to server."
        assert AuditEventType.PERSISTENCE_FAILED in stores.audit_types()
        assert AuditEventType.TRANSACTION_CREATED not in stores.audit_types()

    def test_delete_failure_keeps_local_delete(self):
        tx = expense(10)
        stores = Stores()
        failing = FailingTransactionStorage([tx])
        controller = stores.controller(transaction_store=failing)
        asyncio.run(controller.load())

        assert asyncio.run(controller.delete_transaction(tx.id)) is True
        assert controller.state.transactions == []
        assert titles(controller) == ["Error"]


class TestBillsAndGoals:

    def test_pay_bill(self):
        bill = Bill(name="Rent", amount=Decimal("15000"), due_day=25)
        stores = Stores(transactions=[salary()], bills=[bill])
        controller = loaded(stores)

        tx = asyncio.run(controller.pay_bill(bill.id))

        assert tx.description == "Rent"
        assert tx.bill_id == bill.id
        assert tx.is_recurring is True
        assert tx.date == date(2024, 5, 16)
        assert controller.state.bills[0].last_paid_date == date(2024, 5, 16)
        assert titles(controller)[0] == "Bill Paid"
        assert controller.state.notifications[0].type == NotificationType.SUCCESS
        assert asyncio.run(stores.bills.list_all())[0].last_paid_date == date(2024, 5, 16)
        assert AuditEventType.BILL_PAID in stores.audit_types()

    def test_pay_unknown_bill(self):
        controller = loaded(Stores())
        assert asyncio.run(controller.pay_bill("missing")) is None

    def test_deposit_to_goal(self):
        goal = Goal(name="Bike", target_amount=Decimal("1000"))
        controller = loaded(Stores(transactions=[salary()], goals=[goal]))

        tx = asyncio.run(controller.deposit_to_goal(goal.id, Decimal("250")))

        assert tx.description == "Deposit: Bike"
        assert tx.category == ExpenseCategory.SAVINGS.value
        assert tx.goal_id == goal.id
        assert controller.state.goals[0].current_amount == Decimal("250")

    def test_deposit_must_be_positive(self):
        goal = Goal(name="Bike", target_amount=Decimal("1000"))
        controller = loaded(Stores(goals=[goal]))
        with pytest.raises(ValueError):
            asyncio.run(controller.deposit_to_goal(goal.id, Decimal("0")))

    def test_collection_setters_sync(self):
        stores = Stores()
        controller = loaded(stores)
        bill = Bill(name="Gym", amount=Decimal("900"), due_day=5)
        goal = Goal(name="Trip", target_amount=Decimal("20000"))
        budget = Budget(category="Food", limit=Decimal("4000"))

        asyncio.run(controller.set_bills([bill]))
        asyncio.run(controller.set_goals([goal]))
        asyncio.run(controller.set_budgets([budget]))

        assert asyncio.run(stores.bills.list_all()) == [bill]
        assert asyncio.run(stores.goals.list_all()) == [goal]
        assert asyncio.run(stores.budgets.list_all()) == [budget]


class TestSettingsAndPreferences:

    def test_set_budget_limit_and_remove(self):
        stores = Stores()
        controller = loaded(stores)

        asyncio.run(controller.set_budget_limit("Food", Decimal("5000")))
        asyncio.run(controller.set_budget_limit("Travel", Decimal("200"), BudgetPeriod.WEEKLY))
        asyncio.run(controller.set_budget_limit("Food", Decimal("6000")))
        assert [(b.category, b.limit) for b in controller.state.budgets] == [
            ("Travel", Decimal("200")),
            ("Food", Decimal("6000")),
        ]

        asyncio.run(controller.set_budget_limit("Travel", Decimal("0")))
        assert [b.category for b in asyncio.run(stores.budgets.list_all())] == ["Food"]

    def test_expected_income_persists(self):
        stores = Stores()
        controller = loaded(stores)
        asyncio.run(controller.set_expected_income(Decimal("75000")))

        reloaded = loaded(stores)
        assert reloaded.state.expected_income == Decimal("75000")

    def test_unreadable_expected_income_loads_as_zero(self):
        stores = Stores(transactions=[salary()])
        asyncio.run(stores.preferences.set_value("expected_income", "lots"))

        controller = loaded(stores)

        assert controller.is_loaded
        assert controller.state.expected_income == Decimal("0")
        assert len(controller.state.transactions) == 1

    def test_save_and_delete_filter(self):
        stores = Stores()
        controller = loaded(stores)
        saved = asyncio.run(controller.save_filter("Food", FilterConfig(categories=["Food"])))
        assert asyncio.run(stores.filters.list_all()) == [saved]

        asyncio.run(controller.delete_filter(saved.id))
        assert controller.state.saved_filters == []

    def test_mark_read_and_clear(self):
        stores = Stores()
        controller = loaded(stores)
        asyncio.run(controller.add_transaction(salary("10")))
        assert controller.state.unread_count == 1

        asyncio.run(controller.mark_notifications_read())
        assert controller.state.unread_count == 0
        assert all(n.read for n in asyncio.run(stores.notifications.list_all()))

        asyncio.run(controller.clear_notifications())
        assert controller.state.notifications == []
        assert asyncio.run(stores.notifications.list_all()) == []


class FakeAgent:

    def __init__(self):
        self.calls = 0

    async def get_spending_insights(self, transactions, budgets, today=None):
        self.calls += 1
        return InsightData(summary=f"{len(transactions)} transactions")

    async def analyze_subscriptions(self, transactions, bills):
        return None

    async def suggest_category(self, description):
        return ExpenseCategory.FOOD

    async def parse_receipt(self, image_b64, mime_type="image/jpeg"):
        return ReceiptData(amount=Decimal("120"), merchant="Cafe", category=ExpenseCategory.FOOD)


class TestInsights:

    def test_request_insights(self):
        stores = Stores(transactions=[salary()])
        agent = FakeAgent()
        controller = loaded(stores, insight_agent_factory=lambda: agent)

        insights = asyncio.run(controller.request_insights())
        asyncio.run(controller.request_insights())

        assert insights.summary == "1 transactions"
        assert agent.calls == 2
        assert AuditEventType.INSIGHT_REQUESTED in stores.audit_types()

    def test_unconfigured_agent_is_soft(self):
        def broken_factory():
            raise ValueError("GEMINI_API_KEY missing")

        stores = Stores()
        controller = loaded(stores, insight_agent_factory=broken_factory)
        assert asyncio.run(controller.request_insights()) is None
        assert asyncio.run(controller.request_subscription_analysis()) is None
        assert asyncio.run(controller.suggest_category("Pizza")) is None
        assert AuditEventType.SYSTEM_ERROR in stores.audit_types()

    def test_suggest_category(self):
        controller = loaded(Stores(), insight_agent_factory=FakeAgent)
        assert asyncio.run(controller.suggest_category("Pizza")) == ExpenseCategory.FOOD

    def test_scan_receipt_changes_nothing(self):
        controller = loaded(Stores(), insight_agent_factory=FakeAgent)

        receipt = asyncio.run(controller.scan_receipt("aGVsbG8="))

        assert receipt.merchant == "Cafe"
        assert controller.state.transactions == []
        assert controller.state.notifications == []
