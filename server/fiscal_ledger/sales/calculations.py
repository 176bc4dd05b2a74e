from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Tuple

from fiscal_ledger.errors import ValidationError
from fiscal_ledger.utils import ZERO, quantize_rate, to_money

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class DocumentLineInput:
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal


def calculate_line_totals(line: DocumentLineInput) -> Tuple[Decimal, Decimal, Decimal]:
    """Each component is rounded to cents on its own; totals are sums of rounded lines."""
    line_subtotal = to_money(Decimal(line.quantity) * Decimal(line.unit_price))
    tax_amount = to_money(line_subtotal * quantize_rate(line.tax_rate) / HUNDRED)
    line_total = line_subtotal + tax_amount
    return (line_subtotal, tax_amount, line_total)


def calculate_document_totals(lines: Iterable[DocumentLineInput]) -> DocumentTotals:
    subtotal = ZERO
    tax_amount = ZERO
    total = ZERO
    for line in lines:
        line_subtotal, line_tax, line_total = calculate_line_totals(line)
        subtotal += line_subtotal
        tax_amount += line_tax
        total += line_total
    return DocumentTotals(subtotal=subtotal, tax_amount=tax_amount, total=total)


def validate_line_values(quantity: Decimal, unit_price: Decimal, tax_rate: Decimal) -> None:
    if Decimal(quantity) <= 0:
        raise ValidationError("Quantity must be greater than zero.")
    if Decimal(unit_price) < 0:
        raise ValidationError("Unit price cannot be negative.")
    if Decimal(tax_rate) < 0:
        raise ValidationError("Tax rate cannot be negative.")
