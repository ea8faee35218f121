"""
Session Controller for SpendWise

This module ties together all the components and defines the
end-to-end flows for:
1. Session load (fetch collections → auto-pay pass → persist batch)
2. Transaction events (create / edit / delete → alerts → persist)
3. Collection edits (bills, goals, budgets, filters, notifications)

DESIGN DECISION: The controller is the ONLY writer of AppState.
- Every change is applied locally first, then persisted
- A failed write never rolls back the local change; it is logged and
  surfaced as a single alert notification, and never retried
- Core rules (scheduler, evaluator, emitter) never touch the stores

Interactive operations are rejected until load() has completed, so the
auto-pay pass always runs against the freshly loaded collections.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable, Iterable, Optional
from uuid import UUID

from spendwise.agents import InsightAgent
from spendwise.alerts import (
    AlertEvaluator,
    apply_goal_contribution,
    reconcile_goal_contributions,
    revert_goal_contribution,
)
from spendwise.audit import AuditLogger, create_correlation_id, get_logger
from spendwise.config import get_settings
from spendwise.models.finance import (
    AppNotification,
    Bill,
    Budget,
    BudgetPeriod,
    ExpenseCategory,
    FilterConfig,
    Goal,
    InsightData,
    NotificationType,
    ReceiptData,
    SavedFilter,
    SubscriptionAnalysis,
    Transaction,
    TransactionType,
)
from spendwise.models.state import AppState
from spendwise.notifications import (
    NotificationDraft,
    clear_all,
    mark_all_read,
    push_notification,
)
from spendwise.scheduler import BillScheduler
from spendwise.services.storage import (
    CollectionStorageInterface,
    InMemoryAuditStorage,
    InMemoryCollectionStorage,
    InMemoryPreferenceStorage,
    InMemoryTransactionStorage,
    LocalCollectionStorage,
    LocalJSONStore,
    LocalPreferenceStorage,
    LocalTransactionStorage,
    PreferenceStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from spendwise.services.storage.local import (
    BILLS_KEY,
    BUDGETS_KEY,
    FILTERS_KEY,
    GOALS_KEY,
    NOTIFICATIONS_KEY,
)

logger = get_logger(__name__)

EXPECTED_INCOME_KEY = "expected_income"

Clock = Callable[[], datetime]


class SessionNotLoaded(RuntimeError):
    """An interactive operation was attempted before load() completed."""


class SessionController:
    """
    Owns the session's AppState and routes every event through the engine.

    Flow on load:
    1. Fetch every collection from its store
    2. Run the bill scheduler once
    3. Evaluate alerts for each synthesized transaction, in bill order
    4. Persist synthesized transactions, the bill list and notifications

    Flow on a transaction event:
    1. Evaluate alerts against the pre-change ledger
    2. Apply the change and the goal adjustments locally
    3. Push notifications
    4. Persist; failures become an "Error" alert
    """

    def __init__(
        self,
        transaction_store: TransactionStorageInterface,
        bill_store: CollectionStorageInterface[Bill],
        goal_store: CollectionStorageInterface[Goal],
        budget_store: CollectionStorageInterface[Budget],
        notification_store: CollectionStorageInterface[AppNotification],
        filter_store: Optional[CollectionStorageInterface[SavedFilter]] = None,
        preference_store: Optional[PreferenceStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        scheduler: Optional[BillScheduler] = None,
        evaluator: Optional[AlertEvaluator] = None,
        insight_agent_factory: Optional[Callable[[], InsightAgent]] = None,
        clock: Optional[Clock] = None,
        currency_symbol: str = "₹",
    ):
        self._transactions = transaction_store
        self._bills = bill_store
        self._goals = goal_store
        self._budgets = budget_store
        self._notifications = notification_store
        self._filters = filter_store or InMemoryCollectionStorage()
        self._preferences = preference_store or InMemoryPreferenceStorage()
        self._audit_logger = audit_logger or AuditLogger()
        self._scheduler = scheduler or BillScheduler(currency_symbol=currency_symbol)
        self._evaluator = evaluator or AlertEvaluator(currency_symbol=currency_symbol)
        self._insight_agent_factory = insight_agent_factory or InsightAgent
        self._insight_agent: Optional[InsightAgent] = None
        self._clock = clock or datetime.now
        self._currency = currency_symbol

        self.state = AppState()
        self._loaded = False

    # =========================================================================
    # HELPERS
    # =========================================================================

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def currency_symbol(self) -> str:
        return self._currency

    def _require_loaded(self):
        if not self._loaded:
            raise SessionNotLoaded("Call load() before using the session")

    def _today(self) -> date:
        return self._clock().date()

    def _timestamp(self) -> int:
        return int(self._clock().timestamp() * 1000)

    async def _emit(
        self,
        drafts: Iterable[NotificationDraft],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Prepend drafts to the notification list, newest first, and audit each."""
        timestamp = self._timestamp()
        for draft in drafts:
            self.state.notifications = push_notification(
                self.state.notifications,
                draft.title,
                draft.message,
                draft.type,
                timestamp,
            )
            notification = self.state.notifications[0]
            await self._audit_logger.log_notification(
                notification_id=notification.id,
                notification_type=notification.type.value,
                title=notification.title,
                correlation_id=correlation_id,
            )

    async def _persist(
        self,
        write: Callable[[], Awaitable[object]],
        operation: str,
        failure_message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Run one store write.

        On failure the local state is kept, the failure is audited and an
        "Error" alert is pushed. Returns whether the write succeeded.
        """
        try:
            await write()
            return True
        except StorageError as e:
            await self._audit_logger.log_persistence_failed(
                operation=operation,
                error_message=str(e),
                entity_type=entity_type,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
            await self._emit(
                [NotificationDraft("Error", failure_message, NotificationType.ALERT)],
                correlation_id,
            )
            return False

    async def _sync_notifications(self, correlation_id: Optional[UUID] = None) -> None:
        # A failing notification store cannot report itself through notifications
        try:
            await self._notifications.replace_all(self.state.notifications)
        except StorageError as e:
            await self._audit_logger.log_persistence_failed(
                operation="sync_notifications",
                error_message=str(e),
                entity_type="notification",
                correlation_id=correlation_id,
            )

    async def _sync_goals(self, correlation_id: Optional[UUID] = None) -> bool:
        return await self._persist(
            lambda: self._goals.replace_all(self.state.goals),
            "sync_goals",
            "Failed to sync goals to server.",
            entity_type="goal",
            correlation_id=correlation_id,
        )

    async def _sync_bills(self, correlation_id: Optional[UUID] = None) -> bool:
        return await self._persist(
            lambda: self._bills.replace_all(self.state.bills),
            "sync_bills",
            "Failed to sync bills to server.",
            entity_type="bill",
            correlation_id=correlation_id,
        )

    async def _sync_budgets(self, correlation_id: Optional[UUID] = None) -> bool:
        return await self._persist(
            lambda: self._budgets.replace_all(self.state.budgets),
            "sync_budgets",
            "Failed to sync budgets to server.",
            entity_type="budget",
            correlation_id=correlation_id,
        )

    async def _sync_filters(self, correlation_id: Optional[UUID] = None) -> bool:
        return await self._persist(
            lambda: self._filters.replace_all(self.state.saved_filters),
            "sync_filters",
            "Failed to save filters.",
            entity_type="filter",
            correlation_id=correlation_id,
        )

    # =========================================================================
    # LOAD
    # =========================================================================

    async def load(self) -> AppState:
        """
        Load every collection and run the auto-pay pass.

        A load failure leaves the session usable with empty collections
        and a "Connection Error" alert.
        """
        correlation_id = create_correlation_id()

        try:
            transactions = await self._transactions.list_transactions()
            bills = await self._bills.list_all()
            goals = await self._goals.list_all()
            budgets = await self._budgets.list_all()
            notifications = await self._notifications.list_all()
            saved_filters = await self._filters.list_all()
            expected_income = await self._preferences.get_value(EXPECTED_INCOME_KEY, "0")
        except StorageError as e:
            await self._audit_logger.log_persistence_failed(
                operation="load",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            self.state = AppState()
            self._loaded = True
            await self._emit(
                [
                    NotificationDraft(
                        "Connection Error",
                        "Could not load your data. Changes will be kept for this session only.",
                        NotificationType.ALERT,
                    )
                ],
                correlation_id,
            )
            return self.state

        self.state = AppState(
            transactions=transactions,
            bills=bills,
            goals=goals,
            budgets=budgets,
            notifications=notifications,
            saved_filters=saved_filters,
            expected_income=self._parse_expected_income(expected_income),
        )
        self._loaded = True

        await self._run_autopay(correlation_id)

        await self._audit_logger.log_session_loaded(
            counts={
                "transactions": len(self.state.transactions),
                "bills": len(self.state.bills),
                "goals": len(self.state.goals),
                "budgets": len(self.state.budgets),
                "notifications": len(self.state.notifications),
            },
            correlation_id=correlation_id,
        )
        return self.state

    def _parse_expected_income(self, raw: object) -> Decimal:
        """Stored expected income as a Decimal; unreadable values count as 0."""
        try:
            amount = Decimal(str(raw))
        except InvalidOperation:
            amount = Decimal("NaN")
        if not amount.is_finite() or amount < 0:
            logger.warning("invalid_expected_income", value=str(raw))
            return Decimal("0")
        return amount

    async def _run_autopay(self, correlation_id: UUID) -> None:
        result = self._scheduler.run(
            self.state.bills,
            self.state.notifications,
            self._today(),
            self._timestamp(),
        )
        self.state.bills = result.bills

        # Each synthesized transaction is judged against the ledger as it
        # stood before it, including the ones synthesized earlier in the pass
        drafts = list(result.notifications)
        for transaction in result.new_transactions:
            drafts.extend(
                self._evaluator.evaluate(
                    transaction,
                    self.state.transactions,
                    self.state.budgets,
                    self.state.goals,
                )
            )
            self.state.transactions = [transaction, *self.state.transactions]
            self.state.goals = apply_goal_contribution(self.state.goals, transaction)

        await self._emit(drafts, correlation_id)

        for transaction in result.new_transactions:
            bill = self.state.find_bill(transaction.bill_id)
            await self._audit_logger.log_bill_auto_paid(
                bill_id=transaction.bill_id,
                bill_name=bill.name if bill else transaction.description,
                amount=str(transaction.amount),
                correlation_id=correlation_id,
            )

        # Persist as one batch, after every bill has been evaluated
        if result.bills_changed:
            await self._sync_bills(correlation_id)
        for transaction in result.new_transactions:
            await self._persist(
                lambda t=transaction: self._transactions.create_transaction(t),
                "create_transaction",
                "Failed to save auto-pay transaction to server.",
                entity_type="transaction",
                entity_id=transaction.id,
                correlation_id=correlation_id,
            )
            await self._audit_logger.log_transaction_created(
                transaction_id=transaction.id,
                amount=str(transaction.amount),
                category=transaction.category,
                correlation_id=correlation_id,
                is_user_action=False,
            )
        if drafts or result.bills_changed:
            await self._sync_notifications(correlation_id)

    # =========================================================================
    # TRANSACTION EVENTS
    # =========================================================================

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        """
        Accept a new transaction.

        A transaction carrying a bill_id also marks that bill paid.
        """
        self._require_loaded()
        correlation_id = create_correlation_id()

        drafts = self._evaluator.evaluate(
            transaction,
            self.state.transactions,
            self.state.budgets,
            self.state.goals,
        )

        self.state.transactions = [transaction, *self.state.transactions]
        goals_before = self.state.goals
        self.state.goals = apply_goal_contribution(goals_before, transaction)

        bill_paid = False
        if transaction.bill_id and self.state.find_bill(transaction.bill_id):
            self.state.bills = [
                b.model_copy(update={"last_paid_date": transaction.date})
                if b.id == transaction.bill_id else b
                for b in self.state.bills
            ]
            drafts.append(
                NotificationDraft(
                    "Bill Paid",
                    f"Payment recorded for {transaction.description}.",
                    NotificationType.SUCCESS,
                )
            )
            bill_paid = True

        await self._emit(drafts, correlation_id)

        saved = await self._persist(
            lambda: self._transactions.create_transaction(transaction),
            "create_transaction",
            "Failed to save transaction to server.",
            entity_type="transaction",
            entity_id=transaction.id,
            correlation_id=correlation_id,
        )
        if saved:
            await self._audit_logger.log_transaction_created(
                transaction_id=transaction.id,
                amount=str(transaction.amount),
                category=transaction.category,
                correlation_id=correlation_id,
            )
        if self.state.goals != goals_before:
            await self._sync_goals(correlation_id)
        if bill_paid:
            await self._sync_bills(correlation_id)
            await self._audit_logger.log_bill_paid(
                bill_id=transaction.bill_id,
                transaction_id=transaction.id,
                correlation_id=correlation_id,
            )
        await self._sync_notifications(correlation_id)

        return transaction

    async def update_transaction(self, updated: Transaction) -> Optional[Transaction]:
        """
        Replace a transaction by id.

        Returns None, changing nothing, when no transaction has that id.
        """
        self._require_loaded()
        original = self.state.find_transaction(updated.id)
        if original is None:
            logger.warning("update_unknown_transaction", transaction_id=updated.id)
            return None
        correlation_id = create_correlation_id()

        others = [t for t in self.state.transactions if t.id != updated.id]
        goals_before = self.state.goals
        drafts = self._evaluator.evaluate(
            updated,
            others,
            self.state.budgets,
            goals_before,
            replaced=original,
        )

        self.state.transactions = [
            updated if t.id == updated.id else t for t in self.state.transactions
        ]
        self.state.goals = reconcile_goal_contributions(goals_before, original, updated)

        await self._emit(drafts, correlation_id)

        saved = await self._persist(
            lambda: self._transactions.update_transaction(updated),
            "update_transaction",
            "Failed to update transaction on server.",
            entity_type="transaction",
            entity_id=updated.id,
            correlation_id=correlation_id,
        )
        if saved:
            await self._audit_logger.log_transaction_updated(updated.id, correlation_id)
            await self._emit(
                [
                    NotificationDraft(
                        "Transaction Updated",
                        "Your transaction details have been updated.",
                        NotificationType.INFO,
                    )
                ],
                correlation_id,
            )
        if self.state.goals != goals_before:
            await self._sync_goals(correlation_id)
        await self._sync_notifications(correlation_id)

        return updated

    async def delete_transaction(self, transaction_id: str) -> bool:
        """
        Remove a transaction by id.

        Deleting an id that is not in the ledger is a no-op and returns
        False, so a repeated delete never touches goals twice.
        """
        self._require_loaded()
        transaction = self.state.find_transaction(transaction_id)
        if transaction is None:
            return False
        correlation_id = create_correlation_id()

        self.state.transactions = [
            t for t in self.state.transactions if t.id != transaction_id
        ]
        goals_before = self.state.goals
        self.state.goals = revert_goal_contribution(goals_before, transaction)

        deleted = await self._persist(
            lambda: self._transactions.delete_transaction(transaction_id),
            "delete_transaction",
            "Failed to delete transaction on server.",
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
        )
        if deleted:
            await self._audit_logger.log_transaction_deleted(transaction_id, correlation_id)
        if self.state.goals != goals_before:
            await self._sync_goals(correlation_id)
        if not deleted:
            await self._sync_notifications(correlation_id)

        return True

    async def pay_bill(self, bill_id: str) -> Optional[Transaction]:
        """Record a manual payment of a tracked bill, dated today."""
        self._require_loaded()
        bill = self.state.find_bill(bill_id)
        if bill is None:
            return None
        transaction = Transaction(
            type=TransactionType.EXPENSE,
            amount=bill.amount,
            description=bill.name,
            category=bill.category,
            date=self._today(),
            created_at=self._timestamp(),
            bill_id=bill.id,
            is_recurring=True,
        )
        return await self.add_transaction(transaction)

    async def deposit_to_goal(self, goal_id: str, amount: Decimal) -> Optional[Transaction]:
        """Move money into a savings goal by recording a Savings expense."""
        self._require_loaded()
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValueError("Deposit amount must be positive")
        goal = self.state.find_goal(goal_id)
        if goal is None:
            return None
        transaction = Transaction(
            type=TransactionType.EXPENSE,
            amount=amount,
            description=f"Deposit: {goal.name}",
            category=ExpenseCategory.SAVINGS.value,
            date=self._today(),
            created_at=self._timestamp(),
            goal_id=goal.id,
        )
        return await self.add_transaction(transaction)

    # =========================================================================
    # COLLECTION EDITS
    # =========================================================================

    async def set_bills(self, bills: list[Bill]) -> None:
        self._require_loaded()
        self.state.bills = list(bills)
        if not await self._sync_bills():
            await self._sync_notifications()

    async def set_goals(self, goals: list[Goal]) -> None:
        self._require_loaded()
        self.state.goals = list(goals)
        if not await self._sync_goals():
            await self._sync_notifications()

    async def set_budgets(self, budgets: list[Budget]) -> None:
        self._require_loaded()
        self.state.budgets = list(budgets)
        if not await self._sync_budgets():
            await self._sync_notifications()

    async def set_budget_limit(
        self,
        category: str,
        limit: Decimal,
        period: BudgetPeriod = BudgetPeriod.MONTHLY,
    ) -> None:
        """Create, change or (with a limit <= 0) remove one category's budget."""
        limit = Decimal(str(limit))
        budgets = [b for b in self.state.budgets if b.category != category]
        if limit > 0:
            budgets.append(Budget(category=category, limit=limit, period=period))
        await self.set_budgets(budgets)

    async def set_expected_income(self, amount: Decimal) -> None:
        self._require_loaded()
        self.state.expected_income = Decimal(str(amount))
        saved = await self._persist(
            lambda: self._preferences.set_value(
                EXPECTED_INCOME_KEY, str(self.state.expected_income)
            ),
            "set_expected_income",
            "Failed to save expected income.",
            entity_type="preference",
        )
        if not saved:
            await self._sync_notifications()

    async def save_filter(self, name: str, config: FilterConfig) -> SavedFilter:
        self._require_loaded()
        saved_filter = SavedFilter(name=name, config=config)
        self.state.saved_filters = [*self.state.saved_filters, saved_filter]
        if not await self._sync_filters():
            await self._sync_notifications()
        return saved_filter

    async def delete_filter(self, filter_id: str) -> None:
        self._require_loaded()
        self.state.saved_filters = [
            f for f in self.state.saved_filters if f.id != filter_id
        ]
        if not await self._sync_filters():
            await self._sync_notifications()

    async def mark_notifications_read(self) -> None:
        self._require_loaded()
        self.state.notifications = mark_all_read(self.state.notifications)
        await self._sync_notifications()

    async def clear_notifications(self) -> None:
        self._require_loaded()
        self.state.notifications = clear_all(self.state.notifications)
        await self._sync_notifications()

    # =========================================================================
    # AI INSIGHTS
    # =========================================================================

    async def _agent(self) -> Optional[InsightAgent]:
        """Build the insight agent on first use; None if it cannot be configured."""
        if self._insight_agent is None:
            try:
                self._insight_agent = self._insight_agent_factory()
            except Exception as e:
                # Missing GEMINI_ settings surface here as a validation error
                await self._audit_logger.log_error(
                    error_type="insight_agent_unavailable",
                    error_message=str(e),
                )
                return None
        return self._insight_agent

    async def request_insights(self) -> Optional[InsightData]:
        self._require_loaded()
        agent = await self._agent()
        result = None
        if agent is not None:
            result = await agent.get_spending_insights(
                self.state.transactions,
                self.state.budgets,
                today=self._today(),
            )
        await self._audit_logger.log_insight_requested("spending", result is not None)
        return result

    async def request_subscription_analysis(self) -> Optional[SubscriptionAnalysis]:
        self._require_loaded()
        agent = await self._agent()
        result = None
        if agent is not None:
            result = await agent.analyze_subscriptions(
                self.state.transactions,
                self.state.bills,
            )
        await self._audit_logger.log_insight_requested("subscriptions", result is not None)
        return result

    async def suggest_category(self, description: str) -> Optional[ExpenseCategory]:
        agent = await self._agent()
        if agent is None:
            return None
        return await agent.suggest_category(description)

    async def scan_receipt(
        self,
        image_b64: str,
        mime_type: str = "image/jpeg",
    ) -> Optional[ReceiptData]:
        """Pre-fill data for the add-transaction form; nothing is saved here."""
        agent = await self._agent()
        if agent is None:
            return None
        return await agent.parse_receipt(image_b64, mime_type)


# =============================================================================
# FACTORY
# =============================================================================

def create_app_components() -> SessionController:
    """
    Create a session controller wired to the configured backend.

    Used by the Streamlit app to initialize everything.
    """
    settings = get_settings()
    app = settings.app

    if app.storage_backend == "sheets":
        # Imported here so gspread is only needed for the hosted backend
        from spendwise.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsCollectionStorage,
            GoogleSheetsTransactionStorage,
        )

        sheets = settings.google_sheets
        client = GoogleSheetsClient()
        transaction_store = GoogleSheetsTransactionStorage(client)
        bill_store = GoogleSheetsCollectionStorage(Bill, sheets.bills_sheet_name, client)
        goal_store = GoogleSheetsCollectionStorage(Goal, sheets.goals_sheet_name, client)
        budget_store = GoogleSheetsCollectionStorage(Budget, sheets.budgets_sheet_name, client)
        notification_store = GoogleSheetsCollectionStorage(
            AppNotification, sheets.notifications_sheet_name, client
        )
        filter_store = InMemoryCollectionStorage()
        preference_store = InMemoryPreferenceStorage()
        audit_storage = GoogleSheetsAuditStorage(client)
    elif app.storage_backend == "local":
        store = LocalJSONStore(app.local_data_dir)
        transaction_store = LocalTransactionStorage(store)
        bill_store = LocalCollectionStorage(store, BILLS_KEY, Bill)
        goal_store = LocalCollectionStorage(store, GOALS_KEY, Goal)
        budget_store = LocalCollectionStorage(store, BUDGETS_KEY, Budget)
        notification_store = LocalCollectionStorage(store, NOTIFICATIONS_KEY, AppNotification)
        filter_store = LocalCollectionStorage(store, FILTERS_KEY, SavedFilter)
        preference_store = LocalPreferenceStorage(store)
        audit_storage = InMemoryAuditStorage()
    else:
        transaction_store = InMemoryTransactionStorage()
        bill_store = InMemoryCollectionStorage()
        goal_store = InMemoryCollectionStorage()
        budget_store = InMemoryCollectionStorage()
        notification_store = InMemoryCollectionStorage()
        filter_store = InMemoryCollectionStorage()
        preference_store = InMemoryPreferenceStorage()
        audit_storage = InMemoryAuditStorage()

    return SessionController(
        transaction_store=transaction_store,
        bill_store=bill_store,
        goal_store=goal_store,
        budget_store=budget_store,
        notification_store=notification_store,
        filter_store=filter_store,
        preference_store=preference_store,
        audit_logger=AuditLogger(audit_storage),
        scheduler=BillScheduler(
            reminder_window_days=app.bill_reminder_window_days,
            reminder_dedup_hours=app.reminder_dedup_hours,
            currency_symbol=app.currency_symbol,
        ),
        evaluator=AlertEvaluator(
            low_balance_threshold=app.low_balance_threshold,
            currency_symbol=app.currency_symbol,
        ),
        currency_symbol=app.currency_symbol,
    )
