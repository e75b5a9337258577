"""Unit tests for width-tag value conversion."""

import math

import numpy as np
import pytest

from robocaty.protocol import codec
from robocaty.protocol.types import Width


class TestToTarget:
    @pytest.mark.parametrize("value", [True, 1, 2, 0.5, -1, "1", "TRUE", "yes"])
    def test_bool_truthy_values(self, value):
        assert codec.to_target(Width.BOOL, value) is True

    @pytest.mark.parametrize("value", [False, 0, 0.0, "", "0", "false", "Off"])
    def test_bool_falsy_values(self, value):
        assert codec.to_target(Width.BOOL, value) is False

    def test_numeric_widths_are_doubles(self):
        assert codec.to_target(Width.UINT16, np.uint16(513)) == 513.0
        assert isinstance(codec.to_target(Width.UINT8, 7), float)
        assert codec.to_target(Width.REAL, 1.2345678901234) == 1.2345678901234


class TestToSource:
    def test_bool_is_exact_one(self):
        assert codec.to_source(Width.BOOL, 1.0) is True
        assert codec.to_source(Width.BOOL, 0.0) is False
        assert codec.to_source(Width.BOOL, 0.999) is False

    def test_uint8_wraps_modulo_256(self):
        out = codec.to_source(Width.UINT8, 300.0)
        assert out == 44
        assert isinstance(out, np.uint8)

    def test_uint8_truncates_toward_zero(self):
        assert codec.to_source(Width.UINT8, 7.9) == 7
        assert codec.to_source(Width.UINT8, -1.0) == 255

    def test_uint16_and_uint32_ranges(self):
        assert codec.to_source(Width.UINT16, 65536.0 + 5) == 5
        assert codec.to_source(Width.UINT32, 4294967295.0) == 4294967295
        assert isinstance(codec.to_source(Width.UINT32, 1.0), np.uint32)

    def test_real_keeps_full_precision(self):
        value = 0.1 + 0.2
        assert codec.to_source(Width.REAL, value) == value

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_cannot_be_narrowed(self, bad):
        with pytest.raises(ValueError):
            codec.to_source(Width.UINT16, bad)


class TestDisplay:
    def test_bool(self):
        assert codec.display(Width.BOOL, True) == "TRUE"
        assert codec.display(Width.BOOL, 0) == "FALSE"

    @pytest.mark.parametrize(
        ("value", "text"),
        [(44, "44"), (1.5, "1.5"), (2.0, "2"), (3.14159, "3.14"), (-0.001, "0")],
    )
    def test_numbers(self, value, text):
        assert codec.display(Width.REAL, value) == text
