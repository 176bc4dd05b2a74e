from datetime import date
from decimal import Decimal

import pytest

from fiscal_ledger.accounting.posting import (
    JournalLineInput,
    build_bill_entry,
    build_invoice_entry,
    build_payment_entry,
    build_transfer_entry,
    reversed_lines,
    validate_entry_lines,
)
from fiscal_ledger.errors import InsufficientLinesError, InvariantViolation, UnbalancedEntryError, ValidationError


def test_validate_entry_lines_accepts_balanced_lines():
    validate_entry_lines(
        [
            JournalLineInput(account_id=1, debit=Decimal("100.00")),
            JournalLineInput(account_id=2, credit=Decimal("60.00")),
            JournalLineInput(account_id=3, credit=Decimal("40.00")),
        ]
    )


def test_unbalanced_lines_are_an_invariant_violation():
    with pytest.raises(UnbalancedEntryError) as exc_info:
        validate_entry_lines(
            [
                JournalLineInput(account_id=1, debit=Decimal("100.00")),
                JournalLineInput(account_id=2, credit=Decimal("90.00")),
            ]
        )
    assert isinstance(exc_info.value, InvariantViolation)


def test_single_line_is_rejected():
    with pytest.raises(InsufficientLinesError):
        validate_entry_lines([JournalLineInput(account_id=1, debit=Decimal("10.00"))])


@pytest.mark.parametrize(
    "line",
    [
        JournalLineInput(account_id=1, debit=Decimal("-1.00")),
        JournalLineInput(account_id=1, debit=Decimal("1.00"), credit=Decimal("1.00")),
        JournalLineInput(account_id=1),
    ],
)
def test_line_amount_rules(line):
    with pytest.raises(ValidationError):
        validate_entry_lines([line, JournalLineInput(account_id=2, credit=Decimal("1.00"))])


def test_reversed_lines_swap_sides():
    lines = reversed_lines(
        [
            JournalLineInput(account_id=1, debit=Decimal("116.00")),
            JournalLineInput(account_id=2, credit=Decimal("116.00")),
        ]
    )
    assert [(line.account_id, line.debit, line.credit) for line in lines] == [
        (1, Decimal("0.00"), Decimal("116.00")),
        (2, Decimal("116.00"), Decimal("0.00")),
    ]


def test_invoice_entry_debits_receivable_for_total():
    entry = build_invoice_entry(
        company_id=1,
        entry_date=date(2024, 3, 1),
        receivable_account_id=10,
        revenue_by_account={40: Decimal("100.00")},
        tax_by_account={23: Decimal("16.00")},
        description="Invoice",
        source_id=7,
    )
    assert entry.source_type == "invoice"
    assert entry.source_id == 7
    assert [(line.account_id, line.debit, line.credit) for line in entry.lines] == [
        (10, Decimal("116.00"), Decimal("0.00")),
        (40, Decimal("0.00"), Decimal("100.00")),
        (23, Decimal("0.00"), Decimal("16.00")),
    ]


def test_bill_entry_credits_payable_and_skips_zero_tax():
    entry = build_bill_entry(
        company_id=1,
        entry_date=date(2024, 3, 1),
        payable_account_id=21,
        expense_by_account={51: Decimal("80.00")},
        tax_by_account={14: Decimal("0.00")},
        description="Bill",
    )
    assert entry.source_type == "bill"
    assert [(line.account_id, line.debit, line.credit) for line in entry.lines] == [
        (51, Decimal("80.00"), Decimal("0.00")),
        (21, Decimal("0.00"), Decimal("80.00")),
    ]


def test_transfer_entry_needs_two_accounts():
    with pytest.raises(ValidationError):
        build_transfer_entry(
            company_id=1,
            entry_date=date(2024, 3, 1),
            debit_account_id=5,
            credit_account_id=5,
            amount=Decimal("10.00"),
            description="Same account",
            source_type="bank_transaction",
        )


@pytest.mark.parametrize(
    ("payment_type", "expected"),
    [("income", (11, 13)), ("expense", (13, 11))],
)
def test_payment_entry_direction(payment_type, expected):
    entry = build_payment_entry(
        company_id=1,
        entry_date=date(2024, 3, 1),
        payment_type=payment_type,
        cash_account_id=11,
        control_account_id=13,
        amount=Decimal("50.00"),
        description="Payment",
    )
    debit_line, credit_line = entry.lines
    assert (debit_line.account_id, credit_line.account_id) == expected
    assert debit_line.debit == credit_line.credit == Decimal("50.00")
    assert entry.source_type == "payment"
