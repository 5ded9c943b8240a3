import pytest

from hsp_core.crypto import canonical_json_dumps, is_canonicalizable, safe_hash_encode
from hsp_core.errors import (
    HSPError,
    HSP_E_CANON_DEPTH,
    HSP_E_CANON_INT_TOO_LARGE,
    HSP_E_CANON_KEY_COLLISION,
    HSP_E_CANON_KEY_TYPE,
    HSP_E_CANON_NON_JSON,
    HSP_E_CANON_NONFINITE,
)


def test_canonical_json_sorts_keys_and_drops_whitespace():
    assert canonical_json_dumps({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'


def test_canonical_json_normalizes_unicode_nfc():
    # "e" + combining acute accent should normalize to a single composed "é"
    canon = canonical_json_dumps({"s": "e\u0301"})
    assert canon == '{"s":"\u00e9"}'


def test_canonical_json_preserves_large_integers_exactly():
    big = 12345678901234567890
    assert canonical_json_dumps({"n": big}) == f'{{"n":{big}}}'


def test_canonical_json_rejects_pathological_bignums_by_digit_length():
    huge = int("9" * 200)
    with pytest.raises(HSPError) as ei:
        canonical_json_dumps({"n": huge})
    assert ei.value.code == HSP_E_CANON_INT_TOO_LARGE


def test_canonical_json_rejects_excessive_nesting():
    x = "leaf"
    for _ in range(70):
        x = [x]
    with pytest.raises(HSPError) as ei:
        canonical_json_dumps(x)
    assert ei.value.code == HSP_E_CANON_DEPTH


def test_canonical_json_rejects_key_collisions_after_unicode_normalization():
    obj = {"\u00e9": 1, "e\u0301": 2}
    with pytest.raises(HSPError) as ei:
        canonical_json_dumps(obj)
    assert ei.value.code == HSP_E_CANON_KEY_COLLISION


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_canonical_json_rejects_non_finite_floats(bad):
    with pytest.raises(HSPError) as ei:
        canonical_json_dumps({"x": bad})
    assert ei.value.code == HSP_E_CANON_NONFINITE


def test_canonical_json_rejects_non_string_keys_and_unknown_types():
    with pytest.raises(HSPError) as ei:
        canonical_json_dumps({1: "a"})
    assert ei.value.code == HSP_E_CANON_KEY_TYPE

    with pytest.raises(HSPError) as ei:
        canonical_json_dumps({"s": {1, 2}})
    assert ei.value.code == HSP_E_CANON_NON_JSON
    assert ei.value.details["path"] == "$['s']"


def test_is_canonicalizable():
    assert is_canonicalizable({"a": [1, "x", None, True, 1.5]})
    assert not is_canonicalizable({"a": object()})


def test_safe_hash_encode_is_length_prefixed():
    # Without length prefixes these two would collide.
    assert safe_hash_encode(["ab", "c"]) != safe_hash_encode(["a", "bc"])
    assert safe_hash_encode(["x"]) == (1).to_bytes(8, "big") + b"x"
