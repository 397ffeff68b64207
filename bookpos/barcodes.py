"""
Barcode normalization for catalog lookups.

Scanners and hand entry produce the same book code in several spellings:
hyphenated ISBN-13 ("978-0-06-112008-4"), bare EAN-13, legacy ISBN-10
("0-06-112008-1") and zero-padded UPC/EAN/GTIN-14 variants. All of them
reduce to one lookup key:

- separators are dropped (anything that is not a digit or a trailing X);
- a well-formed ISBN-10 is rewritten as its 978-prefixed ISBN-13;
- leading zeros are stripped, so UPC-A "012345678905", EAN-13
  "0012345678905" and GTIN-14 "00012345678905" share a key.
"""

import re

_NON_CODE = re.compile(r"[^0-9X]")


def _isbn10_is_valid(code: str) -> bool:
    if len(code) != 10 or not code[:9].isdigit():
        return False
    check = code[9]
    if not (check.isdigit() or check == "X"):
        return False
    total = sum((10 - i) * int(d) for i, d in enumerate(code[:9]))
    total += 10 if check == "X" else int(check)
    return total % 11 == 0


def ean13_check_digit(first12: str) -> str:
    total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(first12))
    return str((10 - total % 10) % 10)


def isbn10_to_isbn13(code: str) -> str:
    body = "978" + code[:9]
    return body + ean13_check_digit(body)


def normalize_barcode(raw) -> str:
    code = _NON_CODE.sub("", str(raw or "").strip().upper())
    if not code:
        return ""
    if _isbn10_is_valid(code):
        code = isbn10_to_isbn13(code)
    elif "X" in code:
        # X is only meaningful as an ISBN-10 check digit.
        code = code.replace("X", "")
    return code.lstrip("0") or "0"
