"""Built-in basic chart of accounts.

Rows are ``(code, name, type, is_group, parent_code)`` and are listed parents
first so they can be inserted in order.
"""

STANDARD_CHART = [
    ("1", "Assets", "asset", True, None),
    ("1.1", "Current Assets", "asset", True, "1"),
    ("1.1.01", "Cash", "asset", False, "1.1"),
    ("1.1.02", "Banks", "asset", False, "1.1"),
    ("1.1.03", "Accounts Receivable", "asset", False, "1.1"),
    ("1.1.04", "VAT Recoverable", "asset", False, "1.1"),
    ("1.2", "Fixed Assets", "asset", True, "1"),
    ("1.2.01", "Property and Equipment", "asset", False, "1.2"),
    ("2", "Liabilities", "liability", True, None),
    ("2.1", "Current Liabilities", "liability", True, "2"),
    ("2.1.01", "Accounts Payable", "liability", False, "2.1"),
    ("2.1.02", "VAT Payable", "liability", False, "2.1"),
    ("3", "Equity", "equity", True, None),
    ("3.1", "Share Capital", "equity", False, "3"),
    ("3.2", "Retained Earnings", "equity", False, "3"),
    ("4", "Income", "income", True, None),
    ("4.1", "Sales", "income", False, "4"),
    ("4.2", "Other Income", "income", False, "4"),
    ("5", "Expenses", "expense", True, None),
    ("5.1", "Operating Expenses", "expense", True, "5"),
    ("5.1.01", "Purchases and General Expenses", "expense", False, "5.1"),
    ("5.1.02", "Bank Charges", "expense", False, "5.1"),
]

# Posting role -> account code in STANDARD_CHART.
STANDARD_ROLE_CODES = {
    "AR": "1.1.03",
    "AP": "2.1.01",
    "SALES": "4.1",
    "VAT_PAYABLE": "2.1.02",
    "VAT_RECOVERABLE": "1.1.04",
    "PURCHASES_EXPENSE": "5.1.01",
    "CASH": "1.1.01",
}
