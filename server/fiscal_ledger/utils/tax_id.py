import re

from fiscal_ledger.errors import InvalidTaxIdError

_TAX_ID_PATTERN = re.compile(r"^[JVGEPC]\d{9}$")


def _clean_tax_id(raw: str) -> str:
    return re.sub(r"[-\s]", "", raw or "").upper()


def normalize_tax_id(raw: str) -> tuple[str, str]:
    """Return ``(formatted, type_letter)`` for a RIF such as ``J123456789``.

    The formatted value is ``J-12345678-9``.
    """
    clean = _clean_tax_id(raw)
    if not _TAX_ID_PATTERN.match(clean):
        raise InvalidTaxIdError(f"Invalid tax id '{raw}'. Expected a letter (J, V, G, E, P, C) followed by 9 digits.")
    return f"{clean[0]}-{clean[1:9]}-{clean[9]}", clean[0]
