"""
Kernel Host Adapter

Ties the pure kernel to an injected event store and suggestion store and
defines the host-side flows:
1. Submit (dedup check -> load events -> handle -> append)
2. Policy run (assemble state -> evaluate rules -> reconcile -> apply)
3. Pattern TTL sweep (replay -> expired events -> append)

DESIGN DECISION: The adapter is the only place with I/O and the only
place that retries. Store calls that fail with StorageConnectionError are
retried with exponential backoff; this is safe because every append is
keyed by an idempotency key the store rejects a second time.

The kernel assumes one serialized invocation per user at a time. Nothing
here locks.
"""

from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from life_kernel.audit import AuditLogger, create_correlation_id
from life_kernel.commands import process_command
from life_kernel.config import KernelSettings, get_settings
from life_kernel.domains.patterns import sweep_expired_patterns
from life_kernel.models.envelope import Command, CommandResult, Event
from life_kernel.models.suggestion import Suggestion, order_for_display
from life_kernel.policies import DEFAULT_RULES, PolicyRule, ReconciliationPlan, run_policy_cycle
from life_kernel.queries import DomainState, build_domain_state
from life_kernel.services.storage import (
    DuplicateError,
    EventStoreInterface,
    StorageConnectionError,
    StorageError,
    SuggestionStoreInterface,
)
from life_kernel.validation import KernelError

T = TypeVar("T")


class KernelService:
    """
    Async entry point for the host platform.

    Usage:
        service = KernelService(event_store, suggestion_store, audit_logger=AuditLogger())
        result = await service.submit(command)
        plan = await service.run_policy_engine(now)
    """

    def __init__(
        self,
        event_store: EventStoreInterface,
        suggestion_store: SuggestionStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[KernelSettings] = None,
        rules: Sequence[PolicyRule] = DEFAULT_RULES,
    ):
        self._events = event_store
        self._suggestions = suggestion_store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings()
        self._rules = tuple(rules)

    async def _with_retry(self, call: Callable[..., Awaitable[T]], *args: Any) -> T:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(StorageConnectionError),
            stop=stop_after_attempt(self._settings.storage_retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self._settings.storage_retry_min_wait_seconds,
                max=self._settings.storage_retry_max_wait_seconds,
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await call(*args)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def submit(
        self,
        command: Command,
        correlation_id: Optional[UUID] = None,
    ) -> CommandResult:
        """
        Handle one command end to end.

        Returns:
            CommandResult; deduplicated=True if the key was already used

        Raises:
            ValidationError / UnknownEntityError: The command was rejected
            StorageError: The store failed (after retries for connection errors)
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._with_retry(
            self._events.find_by_idempotency_key, command.idempotency_key
        )
        if existing is not None:
            return await self._deduplicated(command, correlation_id)

        prior = await self._with_retry(self._events.list_all)

        try:
            result = process_command(prior, command, self._settings)
        except KernelError as e:
            if self._audit_logger:
                await self._audit_logger.log_command_rejected(
                    command_type=command.type,
                    idempotency_key=command.idempotency_key,
                    error_code=getattr(e, "issue_type", type(e).__name__),
                    error_message=str(e),
                    correlation_id=correlation_id,
                    field=getattr(e, "field", None),
                )
            raise

        if result.deduplicated:
            return await self._deduplicated(command, correlation_id)

        if result.events:
            try:
                await self._with_retry(self._events.append, result.events)
            except DuplicateError:
                # Lost a race with a retry of the same command
                return await self._deduplicated(command, correlation_id)
            except StorageError as e:
                if self._audit_logger:
                    await self._audit_logger.log_append_failed(
                        idempotency_key=command.idempotency_key,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise

            if self._audit_logger:
                await self._audit_logger.log_events_appended(
                    idempotency_key=command.idempotency_key,
                    event_count=len(result.events),
                    correlation_id=correlation_id,
                )

        if self._audit_logger:
            await self._audit_logger.log_command_accepted(
                command_type=command.type,
                idempotency_key=command.idempotency_key,
                event_types=[event.type for event in result.events],
                correlation_id=correlation_id,
            )

        return result

    async def _deduplicated(self, command: Command, correlation_id: UUID) -> CommandResult:
        if self._audit_logger:
            await self._audit_logger.log_command_deduplicated(
                command_type=command.type,
                idempotency_key=command.idempotency_key,
                correlation_id=correlation_id,
            )
        return CommandResult(
            command_type=command.type,
            idempotency_key=command.idempotency_key,
            deduplicated=True,
        )

    # =========================================================================
    # READ PATH
    # =========================================================================

    async def build_state(self, now: int, timezone: Optional[str] = None) -> DomainState:
        events = await self._with_retry(self._events.list_all)
        return build_domain_state(events, now, timezone, self._settings)

    async def active_suggestions(self) -> list[Suggestion]:
        """The suggestions feed: highest priority first, then oldest."""
        active = await self._with_retry(self._suggestions.list_active)
        return order_for_display(active)

    # =========================================================================
    # POLICY ENGINE
    # =========================================================================

    async def run_policy_engine(
        self,
        now: int,
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationPlan:
        """
        Evaluate policies at `now` and apply the reconciliation plan.

        On a quiet day no rule runs; every active suggestion is dismissed.
        """
        correlation_id = correlation_id or create_correlation_id()

        state = await self.build_state(now)
        current_active = await self._with_retry(self._suggestions.list_active)
        plan = run_policy_cycle(state, current_active, self._rules, self._settings.max_suggestions)

        try:
            for suggestion_id in plan.dismiss:
                await self._with_retry(self._suggestions.dismiss, suggestion_id, now)
            for update in plan.update:
                await self._with_retry(self._suggestions.patch, update)
            for candidate in plan.create:
                await self._with_retry(self._suggestions.insert, candidate, now)
        except StorageError as e:
            # The next run reconciles whatever part of the plan was applied
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="suggestion_write_failed",
                    error_message=str(e),
                    details={"planned_writes": plan.write_count},
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            if plan.suppressed_by_quiet_day:
                await self._audit_logger.log_quiet_day_suppressed(
                    dismissed=len(plan.dismiss),
                    correlation_id=correlation_id,
                )
            elif not plan.is_empty:
                await self._audit_logger.log_suggestions_reconciled(
                    created=[c.policy.value for c in plan.create],
                    updated=[u.policy.value for u in plan.update],
                    dismissed=len(plan.dismiss),
                    correlation_id=correlation_id,
                )

        return plan

    async def dismiss_suggestion(
        self,
        suggestion_id: str,
        now: int,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """User dismissal. Returns False if it was already dismissed."""
        dismissed = await self._with_retry(self._suggestions.dismiss, suggestion_id, now)
        if dismissed and self._audit_logger:
            await self._audit_logger.log_suggestion_dismissed(
                suggestion_id=suggestion_id,
                correlation_id=correlation_id or create_correlation_id(),
            )
        return dismissed

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def sweep_pattern_ttl(
        self,
        now: int,
        correlation_id: Optional[UUID] = None,
    ) -> list[Event]:
        """
        Persist TTL expiry for every unpinned pattern past its expiry.

        Each expiry is appended under its own deterministic key, so a
        repeated sweep appends nothing new.

        Returns:
            The pattern.expired events appended by this run
        """
        correlation_id = correlation_id or create_correlation_id()

        events = await self._with_retry(self._events.list_all)
        appended = []
        for event in sweep_expired_patterns(events, now):
            try:
                await self._with_retry(self._events.append, [event])
            except DuplicateError:
                continue
            appended.append(event)

        if appended and self._audit_logger:
            await self._audit_logger.log_patterns_expired(
                pattern_ids=[event.payload["pattern_id"] for event in appended],
                now=now,
                correlation_id=correlation_id,
            )

        return appended
