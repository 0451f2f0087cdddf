import pytest

from core.normalization import normalize_product_name, same_product


@pytest.mark.parametrize(
    "raw,expected",
    [
        (" ABC   Co ", "abc co"),
        ("Cefaclor  API", "cefaclor api"),
        ("CEFACLOR-API", "cefaclor-api"),
        ("Cefaclor (API)", "cefaclor api"),
        ("Vitamin_B12", "vitaminb12"),
        ("Amoxicillin.Trihydrate 99%", "amoxicillintrihydrate 99"),
        ("세파클러  원료", "세파클러 원료"),
        ("Café\tGlucose\n", "café glucose"),
        ("", ""),
    ],
)
def test_normalize_product_name(raw, expected):
    assert normalize_product_name(raw) == expected


def test_normalize_none_is_empty():
    assert normalize_product_name(None) == ""


def test_normalize_is_idempotent():
    once = normalize_product_name("  Rifaximin / Micronized  ")
    assert normalize_product_name(once) == once


def test_same_product_ignores_case_and_spacing():
    assert same_product("Cefaclor  API", "cefaclor api")
    assert not same_product("Cefaclor API", "CEFACLOR-API")


def test_jamo_joined_by_dropped_punctuation_compose():
    decomposed = "ᄀ.ᅡ api"

    once = normalize_product_name(decomposed)

    assert once == "가 api"
    assert normalize_product_name(once) == once
