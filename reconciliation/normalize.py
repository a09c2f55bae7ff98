"""Invoice number canonicalization.

"#1005", " 1005 " and "1005" must compare equal wherever invoice numbers are
joined or looked up. Every comparison goes through normalize_invoice_no on
BOTH sides.
"""

from typing import Any


def normalize_invoice_no(raw: Any) -> str:
    """Remove every '#', trim, lowercase. None becomes ""."""
    if raw is None:
        return ""
    return str(raw).replace("#", "").strip().lower()


def invoice_numbers_match(a: Any, b: Any) -> bool:
    """Compare two invoice numbers after normalization. Two blanks never match."""
    key = normalize_invoice_no(a)
    return bool(key) and key == normalize_invoice_no(b)


def normalize_supplier(name: Any) -> str:
    """Case-fold and collapse whitespace so "Acme  Foods" == "acme foods"."""
    if name is None:
        return ""
    return " ".join(str(name).split()).casefold()
