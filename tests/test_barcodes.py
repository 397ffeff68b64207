import pytest

from bookpos.barcodes import ean13_check_digit, isbn10_to_isbn13, normalize_barcode


def test_hyphenated_and_bare_isbn13_share_a_key():
    assert normalize_barcode("978-0-06-112008-4") == normalize_barcode("9780061120084")
    assert normalize_barcode("978 0 06 112008 4") == "9780061120084"


def test_isbn10_maps_to_isbn13():
    assert isbn10_to_isbn13("0061120081") == "9780061120084"
    assert normalize_barcode("0-06-112008-1") == "9780061120084"


def test_isbn10_with_x_check_digit():
    # 080442957X -> 9780804429573
    assert normalize_barcode("0-8044-2957-X") == "9780804429573"
    assert normalize_barcode("0-8044-2957-x") == "9780804429573"


def test_leading_zero_variants_share_a_key():
    upc = normalize_barcode("012345678905")
    assert upc == normalize_barcode("0012345678905")
    assert upc == normalize_barcode("00012345678905")
    assert upc == "12345678905"


def test_invalid_isbn10_is_not_rewritten():
    # Wrong check digit: stays a plain 10-digit code.
    assert normalize_barcode("0061120082") == "61120082"


@pytest.mark.parametrize("raw", ["", None, "   ", "--"])
def test_empty_input_has_no_key(raw):
    assert normalize_barcode(raw) == ""


def test_all_zeros_keep_a_key():
    assert normalize_barcode("0000") == "0"


def test_ean13_check_digit():
    assert ean13_check_digit("978006112008") == "4"
    assert ean13_check_digit("590123412345") == "7"
