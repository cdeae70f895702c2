"""Banknote labels and their monetary values."""

from types import MappingProxyType
from typing import Mapping, Optional

# Class names as exported by the Teachable Machine model
DEFAULT_VALUES: Mapping[str, int] = MappingProxyType({
    "oneDollar": 1,
    "fiveDollar": 5,
    "tenDollar": 10,
    "twentyDollar": 20,
    "fiftyDollar": 50,
    "hundredDollar": 100,
})


class BanknoteCatalog:
    """Static mapping from classifier label to banknote value.

    Unknown labels are worth 0 and never add to the sum.
    """

    def __init__(self, values: Optional[Mapping[str, int]] = None) -> None:
        values = DEFAULT_VALUES if values is None else values
        for label, value in values.items():
            if value <= 0:
                raise ValueError(f"Banknote value for {label!r} must be positive, got {value}")
        self._values = dict(values)

    def value_of(self, label: Optional[str]) -> int:
        """Get the value of a label, 0 if unknown."""
        if label is None:
            return 0
        return self._values.get(label, 0)

    def __contains__(self, label: object) -> bool:
        return label in self._values

    def __len__(self) -> int:
        return len(self._values)

    @property
    def labels(self) -> list[str]:
        return list(self._values)


def format_value(value: int) -> str:
    """Spoken form of a single banknote value."""
    return f"{value} dollar" if value == 1 else f"{value} dollars"


def format_sum(total: int) -> str:
    """Spoken form of the accumulated total."""
    return f"Sum of scanned bills: {total} dollars"
