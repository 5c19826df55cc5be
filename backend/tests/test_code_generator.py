from collections import Counter

import pytest

from ranch_access.core.exceptions import InvalidCodeLengthError
from ranch_access.services.code_generator import ALPHANUMERIC, CODE_ALPHABET, generate, normalize_code


class TestGenerate:

    @pytest.mark.parametrize("length", [1, 6, 8, 12])
    def test_length_and_alphabet(self, length):
        code = generate(length)
        assert len(code) == length
        assert all(c in ALPHANUMERIC for c in code)

    def test_custom_alphabet(self):
        code = generate(64, CODE_ALPHABET)
        assert all(c in CODE_ALPHABET for c in code)

    def test_each_position_is_roughly_uniform(self):
        samples = [generate(6) for _ in range(10_000)]
        expected = 10_000 / len(ALPHANUMERIC)

        for position in range(6):
            counts = Counter(code[position] for code in samples)
            # 出現しない記号がないこと
            assert set(counts) == set(ALPHANUMERIC), f"position {position}"
            # カイ二乗統計量（自由度61）。p=0.0001 の臨界値はおよそ 108
            chi_square = sum((counts[s] - expected) ** 2 / expected for s in ALPHANUMERIC)
            assert chi_square < 130, f"position {position}: chi-square {chi_square:.1f}"

    @pytest.mark.parametrize("length", [0, -1, 2.5, "6", True, None])
    def test_invalid_length(self, length):
        with pytest.raises(InvalidCodeLengthError):
            generate(length)

    def test_invalid_length_is_value_error(self):
        with pytest.raises(ValueError):
            generate(0)


class TestNormalizeCode:

    def test_strips_and_uppercases(self):
        assert normalize_code("  ab12cd ") == "AB12CD"

    def test_empty(self):
        assert normalize_code("") == ""
        assert normalize_code(None) == ""
