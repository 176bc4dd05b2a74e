import pytest

from fiscal_ledger.errors import InvalidTaxIdError
from fiscal_ledger.utils.tax_id import normalize_tax_id


@pytest.mark.parametrize(
    "raw",
    ["J123456789", "j-12345678-9", " J 12345678 9 "],
)
def test_normalize_tax_id_formats_rif(raw):
    assert normalize_tax_id(raw) == ("J-12345678-9", "J")


def test_normalize_tax_id_keeps_type_letter():
    assert normalize_tax_id("V987654321") == ("V-98765432-1", "V")


@pytest.mark.parametrize("raw", ["", "X123456789", "J12345678", "J1234567890", "J12345678A"])
def test_normalize_tax_id_rejects_malformed_values(raw):
    with pytest.raises(InvalidTaxIdError):
        normalize_tax_id(raw)
