from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base

ACCOUNT_TYPES = ("asset", "liability", "equity", "income", "expense")
DEBIT_NORMAL_TYPES = {"asset", "expense"}


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    base_currency = Column(String(10), nullable=False, default="USD")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="company")
    accounts = relationship("Account", back_populates="company")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    company = relationship("Company", back_populates="users")


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    parent_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    type = Column(Enum(*ACCOUNT_TYPES, name="account_type"), nullable=False)
    is_group = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    company = relationship("Company", back_populates="accounts")
    parent = relationship("Account", remote_side=[id])

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_account_company_code"),
        Index("ix_accounts_company_type", "company_id", "type"),
    )
    __mapper_args__ = {"version_id_col": version}


class CompanyAccountDefault(Base):
    __tablename__ = "company_account_defaults"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    role = Column(String(50), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    account = relationship("Account")

    __table_args__ = (
        UniqueConstraint("company_id", "role", name="uq_company_account_default_role"),
    )


class CompanySequence(Base):
    __tablename__ = "company_sequences"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    name = Column(String(100), nullable=False)
    last_value = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_company_sequence_name"),
    )


class FiscalSequence(Base):
    __tablename__ = "fiscal_sequences"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    sequence_type = Column(
        Enum("invoice", "credit_note", "debit_note", name="fiscal_sequence_type"),
        nullable=False,
    )
    prefix = Column(String(20), nullable=False, default="")
    current_number = Column(BigInteger, nullable=False, default=0)
    control_prefix = Column(String(20), nullable=False, default="")
    control_current = Column(BigInteger, nullable=False, default=0)
    padding = Column(Integer, nullable=False, default=8)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "sequence_type", name="uq_fiscal_sequence_company_type"),
    )


class JournalEntry(Base):
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    entry_number = Column(Integer, nullable=True)
    entry_date = Column(Date, nullable=False)
    description = Column(String(255), nullable=False)
    reference = Column(String(100), nullable=True)
    status = Column(
        Enum("draft", "posted", "cancelled", name="journal_entry_status"),
        nullable=False,
        default="draft",
    )
    source_type = Column(String(50), nullable=False, default="manual")
    source_id = Column(Integer, nullable=True)
    reverses_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    posted_at = Column(DateTime, nullable=True)

    lines = relationship(
        "JournalLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.id",
    )
    reverses = relationship("JournalEntry", remote_side=[id])

    __table_args__ = (
        UniqueConstraint("company_id", "entry_number", name="uq_journal_entry_company_number"),
        Index("ix_journal_entries_company_date", "company_id", "entry_date"),
    )

    @property
    def total_debit(self) -> Decimal:
        return sum((Decimal(line.debit or 0) for line in self.lines), Decimal("0.00"))

    @property
    def total_credit(self) -> Decimal:
        return sum((Decimal(line.credit or 0) for line in self.lines), Decimal("0.00"))


class JournalLine(Base):
    __tablename__ = "journal_lines"

    id = Column(Integer, primary_key=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    description = Column(String(255), nullable=True)
    debit = Column(Numeric(14, 2), nullable=False, default=0)
    credit = Column(Numeric(14, 2), nullable=False, default=0)

    journal_entry = relationship("JournalEntry", back_populates="lines")
    account = relationship("Account")


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(Integer, nullable=False)
    action = Column(String(50), nullable=False)
    after_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    event_metadata = Column(Text, nullable=True)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    tax_id = Column(String(20), nullable=False)
    tax_id_type = Column(String(1), nullable=False)
    name = Column(String(200), nullable=False)
    trade_name = Column(String(200), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    invoices = relationship("Invoice", back_populates="customer")

    __table_args__ = (
        UniqueConstraint("company_id", "tax_id", name="uq_customer_company_tax_id"),
    )
    __mapper_args__ = {"version_id_col": version}


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    tax_id = Column(String(20), nullable=False)
    tax_id_type = Column(String(1), nullable=False)
    name = Column(String(200), nullable=False)
    trade_name = Column(String(200), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    bank_name = Column(String(100), nullable=True)
    bank_account = Column(String(50), nullable=True)
    bank_account_type = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    bills = relationship("Bill", back_populates="supplier")

    __table_args__ = (
        UniqueConstraint("company_id", "tax_id", name="uq_supplier_company_tax_id"),
    )
    __mapper_args__ = {"version_id_col": version}


class TaxProfile(Base):
    __tablename__ = "tax_profiles"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    name = Column(String(100), nullable=False)
    rate = Column(Numeric(7, 4), nullable=False, default=0)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    sales_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    tax_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_tax_profile_company_name"),
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    invoice_number = Column(String(30), nullable=True)
    control_number = Column(String(30), nullable=True)
    status = Column(
        Enum("draft", "issued", "paid", "cancelled", name="invoice_status"),
        nullable=False,
        default="draft",
    )
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    currency = Column(String(10), nullable=False, default="USD")
    exchange_rate = Column(Numeric(14, 6), nullable=False, default=1)
    notes = Column(Text, nullable=True)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    issued_at = Column(DateTime, nullable=True)
    issued_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    customer = relationship("Customer", back_populates="invoices")
    lines = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.sort_order",
    )
    journal_entry = relationship("JournalEntry")
    credit_note = relationship("CreditNote", back_populates="invoice", uselist=False)

    __table_args__ = (
        UniqueConstraint("company_id", "invoice_number", name="uq_invoice_company_number"),
        UniqueConstraint("company_id", "control_number", name="uq_invoice_company_control_number"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def balance(self) -> Decimal:
        return Decimal(self.total or 0) - Decimal(self.amount_paid or 0)


class InvoiceLine(Base):
    __tablename__ = "invoice_lines"

    id = Column(Integer, primary_key=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(14, 4), nullable=False, default=1)
    unit_price = Column(Numeric(14, 2), nullable=False)
    tax_profile_id = Column(Integer, ForeignKey("tax_profiles.id"), nullable=True)
    tax_rate = Column(Numeric(7, 4), nullable=False, default=0)
    line_subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    line_total = Column(Numeric(14, 2), nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="lines")
    tax_profile = relationship("TaxProfile")


class CreditNote(Base):
    __tablename__ = "credit_notes"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, unique=True)
    note_number = Column(String(30), nullable=False)
    control_number = Column(String(30), nullable=False)
    note_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=False)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    invoice = relationship("Invoice", back_populates="credit_note")

    __table_args__ = (
        UniqueConstraint("company_id", "note_number", name="uq_credit_note_company_number"),
    )


class Bill(Base):
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    bill_number = Column(String(50), nullable=False)
    status = Column(
        Enum("pending", "partial", "paid", "cancelled", name="bill_status"),
        nullable=False,
        default="pending",
    )
    bill_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    currency = Column(String(10), nullable=False, default="USD")
    exchange_rate = Column(Numeric(14, 6), nullable=False, default=1)
    notes = Column(Text, nullable=True)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(14, 2), nullable=False, default=0)
    finalized_at = Column(DateTime, nullable=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    supplier = relationship("Supplier", back_populates="bills")
    lines = relationship(
        "BillLine",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillLine.sort_order",
    )

    __table_args__ = (
        UniqueConstraint("company_id", "supplier_id", "bill_number", name="uq_bill_supplier_number"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def balance(self) -> Decimal:
        return Decimal(self.total or 0) - Decimal(self.amount_paid or 0)

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None


class BillLine(Base):
    __tablename__ = "bill_lines"

    id = Column(Integer, primary_key=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(14, 4), nullable=False, default=1)
    unit_price = Column(Numeric(14, 2), nullable=False)
    tax_rate = Column(Numeric(7, 4), nullable=False, default=0)
    line_subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    line_total = Column(Numeric(14, 2), nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    bill = relationship("Bill", back_populates="lines")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    payment_type = Column(Enum("income", "expense", name="payment_type"), nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_method = Column(
        Enum("cash", "transfer", "check", "card", "mobile", name="payment_method"),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="USD")
    reference = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    idempotency_key = Column(String(100), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    allocations = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentAllocation.id",
    )

    __table_args__ = (
        UniqueConstraint("company_id", "idempotency_key", name="uq_payment_idempotency_key"),
    )


class PaymentAllocation(Base):
    __tablename__ = "payment_allocations"

    id = Column(Integer, primary_key=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False)
    document_type = Column(Enum("invoice", "bill", name="allocation_document_type"), nullable=False)
    document_id = Column(Integer, nullable=False)
    amount_applied = Column(Numeric(14, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    payment = relationship("Payment", back_populates="allocations")

    __table_args__ = (
        Index("ix_payment_allocations_document", "document_type", "document_id"),
    )


class BankAccount(Base):
    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    code = Column(String(50), nullable=False)
    bank_name = Column(String(200), nullable=False)
    account_number = Column(String(50), nullable=False)
    account_type = Column(
        Enum("checking", "savings", "credit", name="bank_account_type"),
        nullable=False,
        default="checking",
    )
    currency = Column(String(10), nullable=False, default="USD")
    chart_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    initial_balance = Column(Numeric(14, 2), nullable=False, default=0)
    current_balance = Column(Numeric(14, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    chart_account = relationship("Account")

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_bank_account_company_code"),
    )
    __mapper_args__ = {"version_id_col": version}


class BankTransaction(Base):
    __tablename__ = "bank_transactions"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False)
    transaction_type = Column(
        Enum("deposit", "withdrawal", "transfer", name="bank_transaction_type"),
        nullable=False,
    )
    amount = Column(Numeric(14, 2), nullable=False)
    transaction_date = Column(Date, nullable=False)
    reference = Column(String(100), nullable=True)
    description = Column(Text, nullable=False)
    destination_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)
    status = Column(
        Enum("pending", "reconciled", name="bank_transaction_status"),
        nullable=False,
        default="pending",
    )
    reconciliation_id = Column(Integer, ForeignKey("bank_reconciliations.id"), nullable=True)
    journal_entry_id = Column(Integer, ForeignKey("journal_entries.id"), nullable=True)
    idempotency_key = Column(String(100), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    bank_account = relationship("BankAccount", foreign_keys=[bank_account_id])
    destination_account = relationship("BankAccount", foreign_keys=[destination_account_id])

    __table_args__ = (
        UniqueConstraint("company_id", "idempotency_key", name="uq_bank_transaction_idempotency_key"),
        Index("ix_bank_transactions_account_date", "bank_account_id", "transaction_date"),
    )


class BankReconciliation(Base):
    __tablename__ = "bank_reconciliations"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=False)
    reconciliation_date = Column(Date, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    balance_per_books = Column(Numeric(14, 2), nullable=False)
    balance_per_bank = Column(Numeric(14, 2), nullable=False)
    difference = Column(Numeric(14, 2), nullable=False)
    notes = Column(Text, nullable=True)
    status = Column(
        Enum("in_progress", "completed", name="bank_reconciliation_status"),
        nullable=False,
        default="in_progress",
    )
    reconciled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    bank_account = relationship("BankAccount")
    transactions = relationship(
        "BankTransaction",
        primaryjoin="BankReconciliation.id == BankTransaction.reconciliation_id",
        viewonly=True,
    )
