from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from fiscal_ledger.errors import OverAppliedError, ValidationError
from fiscal_ledger.utils import ZERO, to_money


@dataclass(frozen=True)
class AllocationInput:
    document_type: str
    document_id: int
    amount: Decimal


@dataclass(frozen=True)
class AllocationCheck:
    document_type: str
    document_id: int
    document_balance: Decimal
    applied_amount: Decimal


def validate_payment_allocations(payment_amount: Decimal, allocations: List[AllocationInput]) -> None:
    if to_money(payment_amount) <= 0:
        raise ValidationError("Payment amount must be greater than zero.")
    if not allocations:
        raise ValidationError("At least one allocation is required.")
    for allocation in allocations:
        if to_money(allocation.amount) <= 0:
            raise ValidationError("Allocated amounts must be greater than zero.")
    total_applied = sum((to_money(allocation.amount) for allocation in allocations), ZERO)
    if total_applied != to_money(payment_amount):
        raise ValidationError(
            f"Allocated amounts ({total_applied}) must equal the payment amount ({to_money(payment_amount)})."
        )


def merge_allocations(allocations: Iterable[AllocationInput]) -> Dict[Tuple[str, int], Decimal]:
    """Sum allocations that target the same document."""
    merged: Dict[Tuple[str, int], Decimal] = {}
    for allocation in allocations:
        key = (allocation.document_type, allocation.document_id)
        merged[key] = merged.get(key, ZERO) + to_money(allocation.amount)
    return merged


def ensure_within_balance(checks: Iterable[AllocationCheck]) -> None:
    for check in checks:
        if check.applied_amount > check.document_balance:
            raise OverAppliedError(
                f"Allocation of {check.applied_amount} exceeds the remaining balance "
                f"{check.document_balance} of {check.document_type} {check.document_id}."
            )
