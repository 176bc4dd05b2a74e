from datetime import date
from decimal import Decimal

import pytest

from fiscal_ledger.accounting.posting import JournalEntryInput, JournalLineInput
from fiscal_ledger.accounting.service import (
    cancel_draft_journal_entry,
    create_draft_journal_entry,
    get_account_balances,
    get_trial_balance,
    list_journal_entries,
    post_draft_journal_entry,
    post_journal_entry,
    reverse_journal_entry,
)
from fiscal_ledger.chart_of_accounts.service import deactivate_account
from fiscal_ledger.errors import InvalidAccountError, InvariantViolation, StateConflict, ValidationError
from fiscal_ledger.models import JournalEntry


def _entry(company_id, lines, *, entry_date=date(2024, 1, 15), description="Capital contribution"):
    return JournalEntryInput(company_id=company_id, entry_date=entry_date, description=description, lines=lines)


def _capital(company_id, ledger, amount="1000.00", **kwargs):
    return _entry(
        company_id,
        [
            JournalLineInput(account_id=ledger["1.1.01"], debit=Decimal(amount)),
            JournalLineInput(account_id=ledger["3.1"], credit=Decimal(amount)),
        ],
        **kwargs,
    )


def test_post_journal_entry_numbers_sequentially(db, company_id, ledger):
    first = post_journal_entry(db, _capital(company_id, ledger))
    second = post_journal_entry(db, _capital(company_id, ledger, "250.00"))
    db.commit()

    assert first.status == "posted"
    assert first.posted_at is not None
    assert (first.entry_number, second.entry_number) == (1, 2)
    assert first.total_debit == first.total_credit == Decimal("1000.00")


def test_unbalanced_entry_is_rejected_and_nothing_is_written(db, company_id, ledger):
    lines = [
        JournalLineInput(account_id=ledger["1.1.01"], debit=Decimal("100.00")),
        JournalLineInput(account_id=ledger["4.1"], credit=Decimal("90.00")),
    ]
    with pytest.raises(InvariantViolation):
        post_journal_entry(db, _entry(company_id, lines, description="Unbalanced sale"))

    assert db.query(JournalEntry).count() == 0


def test_group_and_inactive_accounts_cannot_receive_postings(db, user, ledger):
    group_lines = [
        JournalLineInput(account_id=ledger["1.1"], debit=Decimal("10.00")),
        JournalLineInput(account_id=ledger["3.1"], credit=Decimal("10.00")),
    ]
    with pytest.raises(InvalidAccountError):
        post_journal_entry(db, _entry(user.company_id, group_lines))

    deactivate_account(db, company_id=user.company_id, actor_id=user.id, account_id=ledger["1.1.02"])
    inactive_lines = [
        JournalLineInput(account_id=ledger["1.1.02"], debit=Decimal("10.00")),
        JournalLineInput(account_id=ledger["3.1"], credit=Decimal("10.00")),
    ]
    with pytest.raises(InvalidAccountError):
        post_journal_entry(db, _entry(user.company_id, inactive_lines))


def test_description_is_required(db, company_id, ledger):
    with pytest.raises(ValidationError):
        post_journal_entry(db, _capital(company_id, ledger, description="   "))


def test_account_balances_follow_normal_balance_and_date(db, company_id, ledger):
    post_journal_entry(db, _capital(company_id, ledger, entry_date=date(2024, 1, 10)))
    post_journal_entry(
        db,
        _entry(
            company_id,
            [
                JournalLineInput(account_id=ledger["5.1.01"], debit=Decimal("300.00")),
                JournalLineInput(account_id=ledger["1.1.01"], credit=Decimal("300.00")),
            ],
            entry_date=date(2024, 2, 10),
            description="Office supplies",
        ),
    )
    db.commit()

    january = {row.account_code: row.balance for row in get_account_balances(db, company_id, date(2024, 1, 31))}
    assert january == {"1.1.01": Decimal("1000.00"), "3.1": Decimal("1000.00")}

    february = {row.account_code: row.balance for row in get_account_balances(db, company_id, date(2024, 2, 29))}
    assert february["1.1.01"] == Decimal("700.00")
    assert february["5.1.01"] == Decimal("300.00")
    assert february["3.1"] == Decimal("1000.00")


def test_trial_balance_is_balanced(db, company_id, ledger):
    post_journal_entry(db, _capital(company_id, ledger))
    post_journal_entry(
        db,
        _entry(
            company_id,
            [
                JournalLineInput(account_id=ledger["1.1.03"], debit=Decimal("116.00")),
                JournalLineInput(account_id=ledger["4.1"], credit=Decimal("100.00")),
                JournalLineInput(account_id=ledger["2.1.02"], credit=Decimal("16.00")),
            ],
            description="Manual sale",
        ),
    )
    db.commit()

    trial_balance = get_trial_balance(db, company_id, date(2024, 12, 31))

    assert trial_balance.is_balanced
    assert trial_balance.total_debit == Decimal("1116.00")
    assert len(trial_balance.rows) == 5


def test_draft_entries_do_not_affect_balances_until_posted(db, company_id, ledger):
    draft = create_draft_journal_entry(db, _capital(company_id, ledger))
    db.commit()

    assert draft.status == "draft"
    assert draft.entry_number is None
    assert get_account_balances(db, company_id, date(2024, 12, 31)) == []

    posted = post_draft_journal_entry(db, company_id, draft.id)
    db.commit()
    assert posted.status == "posted"
    assert posted.entry_number == 1
    assert len(get_account_balances(db, company_id, date(2024, 12, 31))) == 2


def test_only_drafts_can_be_cancelled(db, company_id, ledger):
    draft = create_draft_journal_entry(db, _capital(company_id, ledger))
    assert cancel_draft_journal_entry(db, company_id, draft.id).status == "cancelled"

    posted = post_journal_entry(db, _capital(company_id, ledger))
    with pytest.raises(StateConflict) as exc_info:
        cancel_draft_journal_entry(db, company_id, posted.id)
    assert exc_info.value.current_state == "posted"


def test_reversal_offsets_original_and_cannot_repeat(db, company_id, ledger):
    original = post_journal_entry(db, _capital(company_id, ledger))
    reversal = reverse_journal_entry(db, company_id, original.id, entry_date=date(2024, 1, 20))
    db.commit()

    assert reversal.reverses_id == original.id
    assert reversal.source_type == "reversal"
    assert reversal.description == f"Reversal of entry #{original.entry_number}"
    balances = get_account_balances(db, company_id, date(2024, 12, 31))
    assert all(row.balance == Decimal("0.00") for row in balances)

    with pytest.raises(StateConflict) as exc_info:
        reverse_journal_entry(db, company_id, original.id)
    assert exc_info.value.current_state == "reversed"


def test_list_journal_entries_filters(db, company_id, ledger):
    post_journal_entry(db, _capital(company_id, ledger, description="Opening capital"))
    post_journal_entry(
        db,
        _entry(
            company_id,
            [
                JournalLineInput(account_id=ledger["5.1.02"], debit=Decimal("5.00")),
                JournalLineInput(account_id=ledger["1.1.02"], credit=Decimal("5.00")),
            ],
            description="Bank fee",
        ),
    )
    db.commit()

    by_account = list_journal_entries(db, company_id, account_id=ledger["5.1.02"])
    assert [entry.description for entry in by_account] == ["Bank fee"]
    by_search = list_journal_entries(db, company_id, search="capital")
    assert [entry.description for entry in by_search] == ["Opening capital"]


def test_account_balances_are_repeatable_for_the_same_date(db, company_id, ledger):
    post_journal_entry(db, _capital(company_id, ledger))
    post_journal_entry(db, _capital(company_id, ledger, "40.00", entry_date=date(2024, 3, 1)))
    db.commit()

    first = get_account_balances(db, company_id, date(2024, 2, 1))
    second = get_account_balances(db, company_id, date(2024, 2, 1))

    assert first == second
    assert {row.account_code: row.balance for row in first} == {"1.1.01": Decimal("1000.00"), "3.1": Decimal("1000.00")}
