"""Resource quantities such as '10m', '5Mi' or '1'."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction


class QuantityFormat(str, Enum):
    DECIMAL_SI = "DecimalSI"
    BINARY_SI = "BinarySI"
    DECIMAL_EXPONENT = "DecimalExponent"


_BINARY = {"Ki": 1, "Mi": 2, "Gi": 3, "Ti": 4, "Pi": 5, "Ei": 6}
_DECIMAL = {"n": -9, "u": -6, "m": -3, "": 0, "k": 3, "M": 6, "G": 9, "T": 12, "P": 15, "E": 18}
_DECIMAL_SUFFIX = {v: k for k, v in _DECIMAL.items()}
_BINARY_SUFFIX = {v: k for k, v in _BINARY.items()}

_QUANTITY_RE = re.compile(
    r"^([+-]?)(\d+(?:\.\d*)?|\.\d+)(Ki|Mi|Gi|Ti|Pi|Ei|[numkMGTPE]|[eE][+-]?\d+)?$"
)


@dataclass(frozen=True)
class Quantity:
    """An exact amount with the notation it is printed in."""

    value: Fraction = Fraction(0)
    format: QuantityFormat | None = None

    def add(self, other: "Quantity") -> "Quantity":
        fmt = other.format if self.value == 0 or self.format is None else self.format
        return Quantity(self.value + other.value, fmt)

    def __str__(self) -> str:
        nanos = math.ceil(abs(self.value) * 10**9)
        if nanos == 0:
            return "0"
        sign = "-" if self.value < 0 else ""
        fmt = self.format or QuantityFormat.DECIMAL_SI
        whole = Fraction(nanos, 10**9)
        if fmt is QuantityFormat.BINARY_SI and whole.denominator == 1 and whole >= 1024:
            n = int(whole)
            power = 0
            while power < 6 and n % 1024 ** (power + 1) == 0:
                power += 1
            if power:
                return f"{sign}{n // 1024 ** power}{_BINARY_SUFFIX[power]}"
            return f"{sign}{n}"
        exponent = -9
        while exponent < 18 and nanos % 10 ** (exponent + 12) == 0:
            exponent += 3
        mantissa = nanos // 10 ** (exponent + 9)
        if fmt is QuantityFormat.DECIMAL_EXPONENT:
            suffix = f"e{exponent}" if exponent else ""
        else:
            suffix = _DECIMAL_SUFFIX[exponent]
        return f"{sign}{mantissa}{suffix}"


def parse_quantity(text: str) -> Quantity:
    """Parse a quantity string; raises ValueError if it is malformed."""
    m = _QUANTITY_RE.match(text.strip())
    if not m:
        raise ValueError(f"invalid quantity {text!r}")
    sign, number, suffix = m.group(1), m.group(2), m.group(3) or ""
    value = Fraction(number)
    if suffix in _BINARY:
        value *= 1024 ** _BINARY[suffix]
        fmt = QuantityFormat.BINARY_SI
    elif suffix[:1] in ("e", "E"):
        value *= Fraction(10) ** int(suffix[1:])
        fmt = QuantityFormat.DECIMAL_EXPONENT
    else:
        value *= Fraction(10) ** _DECIMAL[suffix]
        fmt = QuantityFormat.DECIMAL_SI
    if sign == "-":
        value = -value
    return Quantity(value, fmt)