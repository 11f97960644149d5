"""
Finance Domain

Envelopes (soft monthly spending ceilings) and the transactions filed
against them.

The inbox holds imported transactions waiting for the user to confirm them
into an envelope. A transaction is in at most one of {inbox, confirmed}:
inbox is exactly the set of transactions with pending_import=True.

IMPORTANT: Amounts are positive integers in minor units (cents). Floats are
never accepted, not even 12.0.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import (
    UnknownEntityError,
    ValidationError,
    require_positive_amount,
    require_text,
)

TransactionSource = Literal["manual", "imported"]

ENVELOPE_NAME_MAX_LENGTH = 60


# =============================================================================
# STATE
# =============================================================================

class Envelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    envelope_id: str
    name: str
    soft_ceiling: Optional[int] = None
    emoji: Optional[str] = None
    is_private: bool = False


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    amount: int
    envelope_id: Optional[str] = None
    source: TransactionSource = "manual"
    merchant_hint: Optional[str] = None
    note: Optional[str] = None
    occurred_at: int
    pending_import: bool = False
    voided: bool = False


class FinanceState(BaseModel):
    """
    envelopes: envelope_id -> Envelope
    recent_transactions: newest first, one entry per transaction_id
    inbox: transaction ids with pending_import=True, newest first
    """
    model_config = ConfigDict(frozen=True)

    envelopes: dict[str, Envelope] = Field(default_factory=dict)
    recent_transactions: list[Transaction] = Field(default_factory=list)
    inbox: list[str] = Field(default_factory=list)

    def transaction(self, transaction_id: str) -> Optional[Transaction]:
        for txn in self.recent_transactions:
            if txn.transaction_id == transaction_id:
                return txn
        return None

    @property
    def inbox_transactions(self) -> list[Transaction]:
        by_id = {txn.transaction_id: txn for txn in self.recent_transactions}
        return [by_id[txn_id] for txn_id in self.inbox if txn_id in by_id]


# =============================================================================
# EVENTS
# =============================================================================

class EnvelopeCeilingUpdated(BaseModel):
    envelope_id: str
    soft_ceiling: Optional[int] = None


class TransactionConfirmed(BaseModel):
    transaction_id: str
    envelope_id: str


class TransactionRef(BaseModel):
    transaction_id: str


reduce: EventReducer[FinanceState] = EventReducer("finance", FinanceState)


def _upsert(state: FinanceState, txn: Transaction, in_inbox: bool) -> FinanceState:
    recent = [t for t in state.recent_transactions if t.transaction_id != txn.transaction_id]
    inbox = [t for t in state.inbox if t != txn.transaction_id]
    if in_inbox:
        inbox.insert(0, txn.transaction_id)
    return state.model_copy(update={
        "recent_transactions": [txn] + recent,
        "inbox": inbox,
    })


def _replace(state: FinanceState, txn: Transaction) -> list[Transaction]:
    return [
        txn if t.transaction_id == txn.transaction_id else t
        for t in state.recent_transactions
    ]


@reduce.on("finance.envelope_created", Envelope)
def _envelope_created(state: FinanceState, event: Event, payload: Envelope) -> FinanceState:
    return state.model_copy(update={
        "envelopes": {**state.envelopes, payload.envelope_id: payload},
    })


@reduce.on("finance.envelope_ceiling_updated", EnvelopeCeilingUpdated)
def _envelope_ceiling_updated(
    state: FinanceState,
    event: Event,
    payload: EnvelopeCeilingUpdated,
) -> FinanceState:
    envelope = state.envelopes.get(payload.envelope_id)
    if envelope is None:
        return state
    updated = envelope.model_copy(update={"soft_ceiling": payload.soft_ceiling})
    return state.model_copy(update={
        "envelopes": {**state.envelopes, payload.envelope_id: updated},
    })


@reduce.on("finance.transaction_logged", Transaction)
def _transaction_logged(state: FinanceState, event: Event, payload: Transaction) -> FinanceState:
    txn = payload.model_copy(update={"pending_import": False})
    return _upsert(state, txn, in_inbox=False)


@reduce.on("finance.transaction_imported", Transaction)
def _transaction_imported(state: FinanceState, event: Event, payload: Transaction) -> FinanceState:
    txn = payload.model_copy(update={"source": "imported", "pending_import": True})
    return _upsert(state, txn, in_inbox=True)


@reduce.on("finance.transaction_confirmed", TransactionConfirmed)
def _transaction_confirmed(
    state: FinanceState,
    event: Event,
    payload: TransactionConfirmed,
) -> FinanceState:
    txn = state.transaction(payload.transaction_id)
    if txn is None:
        return state
    confirmed = txn.model_copy(update={
        "envelope_id": payload.envelope_id,
        "pending_import": False,
    })
    return state.model_copy(update={
        "recent_transactions": _replace(state, confirmed),
        "inbox": [t for t in state.inbox if t != payload.transaction_id],
    })


@reduce.on("finance.transaction_voided", TransactionRef)
def _transaction_voided(state: FinanceState, event: Event, payload: TransactionRef) -> FinanceState:
    inbox = [t for t in state.inbox if t != payload.transaction_id]
    txn = state.transaction(payload.transaction_id)
    if txn is None:
        return state.model_copy(update={"inbox": inbox})
    voided = txn.model_copy(update={"voided": True})
    return state.model_copy(update={
        "recent_transactions": _replace(state, voided),
        "inbox": inbox,
    })


def initial_state() -> FinanceState:
    return reduce.initial_state()


# =============================================================================
# COMMANDS
# =============================================================================

class CreateEnvelope(BaseModel):
    envelope_id: Optional[str] = None
    name: str = Field(..., max_length=ENVELOPE_NAME_MAX_LENGTH)
    soft_ceiling: Optional[StrictInt] = None
    emoji: Optional[str] = Field(default=None, max_length=8)
    is_private: bool = False


class UpdateEnvelopeCeiling(BaseModel):
    envelope_id: str
    soft_ceiling: Optional[StrictInt] = None


class LogTransaction(BaseModel):
    transaction_id: Optional[str] = None
    amount: StrictInt
    envelope_id: Optional[str] = None
    merchant_hint: Optional[str] = None
    note: Optional[str] = None
    occurred_at: Optional[int] = Field(default=None, ge=0)


class ImportTransaction(BaseModel):
    transaction_id: str
    amount: StrictInt
    merchant_hint: Optional[str] = None
    note: Optional[str] = None
    occurred_at: int = Field(..., ge=0)


commands: CommandRouter[FinanceState] = CommandRouter(reduce)


def _require_envelope(state: FinanceState, envelope_id: str) -> Envelope:
    envelope = state.envelopes.get(envelope_id)
    if envelope is None:
        raise UnknownEntityError("envelope", envelope_id)
    return envelope


def _require_transaction(state: FinanceState, transaction_id: str) -> Transaction:
    txn = state.transaction(transaction_id)
    if txn is None:
        raise UnknownEntityError("transaction", transaction_id)
    return txn


def _reject_voided(txn: Transaction) -> None:
    if txn.voided:
        raise ValidationError(
            f"Transaction is voided: {txn.transaction_id}",
            field="transaction_id",
            issue_type="invalid_transition",
        )


def _validate_ceiling(soft_ceiling: Optional[int]) -> None:
    if soft_ceiling is not None:
        require_positive_amount(soft_ceiling, "soft_ceiling")


@commands.on("finance.create_envelope", CreateEnvelope)
def _create_envelope(
    state: FinanceState,
    command: Command,
    payload: CreateEnvelope,
    settings: KernelSettings,
) -> list[Event]:
    envelope_id = payload.envelope_id or command.idempotency_key
    name = require_text(payload.name, "name")
    _validate_ceiling(payload.soft_ceiling)
    if envelope_id in state.envelopes:
        raise ValidationError(
            f"Envelope already exists: {envelope_id}",
            field="envelope_id",
            issue_type="duplicate",
        )
    envelope = Envelope(
        envelope_id=envelope_id,
        name=name,
        soft_ceiling=payload.soft_ceiling,
        emoji=payload.emoji,
        is_private=payload.is_private,
    )
    return [make_event(command, "finance.envelope_created", envelope)]


@commands.on("finance.update_envelope_ceiling", UpdateEnvelopeCeiling)
def _update_envelope_ceiling(
    state: FinanceState,
    command: Command,
    payload: UpdateEnvelopeCeiling,
    settings: KernelSettings,
) -> list[Event]:
    _require_envelope(state, payload.envelope_id)
    _validate_ceiling(payload.soft_ceiling)
    event = EnvelopeCeilingUpdated(**payload.model_dump())
    return [make_event(command, "finance.envelope_ceiling_updated", event)]


@commands.on("finance.log_transaction", LogTransaction)
def _log_transaction(
    state: FinanceState,
    command: Command,
    payload: LogTransaction,
    settings: KernelSettings,
) -> list[Event]:
    require_positive_amount(payload.amount)
    if payload.envelope_id is not None:
        _require_envelope(state, payload.envelope_id)

    transaction_id = payload.transaction_id or command.idempotency_key
    existing = state.transaction(transaction_id)
    if existing is not None:
        _reject_voided(existing)

    txn = Transaction(
        transaction_id=transaction_id,
        amount=payload.amount,
        envelope_id=payload.envelope_id,
        source=existing.source if existing else "manual",
        merchant_hint=payload.merchant_hint,
        note=payload.note,
        occurred_at=payload.occurred_at if payload.occurred_at is not None else command.requested_at,
    )
    return [make_event(command, "finance.transaction_logged", txn)]


@commands.on("finance.import_transaction", ImportTransaction)
def _import_transaction(
    state: FinanceState,
    command: Command,
    payload: ImportTransaction,
    settings: KernelSettings,
) -> list[Event]:
    require_positive_amount(payload.amount)
    if state.transaction(payload.transaction_id) is not None:
        raise ValidationError(
            f"Transaction already exists: {payload.transaction_id}",
            field="transaction_id",
            issue_type="duplicate",
        )
    txn = Transaction(
        transaction_id=payload.transaction_id,
        amount=payload.amount,
        source="imported",
        merchant_hint=payload.merchant_hint,
        note=payload.note,
        occurred_at=payload.occurred_at,
        pending_import=True,
    )
    return [make_event(command, "finance.transaction_imported", txn)]


@commands.on("finance.confirm_transaction", TransactionConfirmed)
def _confirm_transaction(
    state: FinanceState,
    command: Command,
    payload: TransactionConfirmed,
    settings: KernelSettings,
) -> list[Event]:
    """
    Confirm an inbox transaction into an envelope.

    A second confirm for the same transaction under a different idempotency
    key is rejected with issue "not_pending" instead of silently re-filing it.
    Events already in the log still fold last-write-wins.
    """
    txn = _require_transaction(state, payload.transaction_id)
    _require_envelope(state, payload.envelope_id)
    _reject_voided(txn)
    if not txn.pending_import:
        raise ValidationError(
            f"Transaction is not waiting in the inbox: {txn.transaction_id}",
            field="transaction_id",
            issue_type="not_pending",
        )
    return [make_event(command, "finance.transaction_confirmed", payload)]


@commands.on("finance.void_transaction", TransactionRef)
def _void_transaction(
    state: FinanceState,
    command: Command,
    payload: TransactionRef,
    settings: KernelSettings,
) -> list[Event]:
    txn = _require_transaction(state, payload.transaction_id)
    _reject_voided(txn)
    return [make_event(command, "finance.transaction_voided", payload)]
