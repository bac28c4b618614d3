"""Value objects for the domain layer.

Money amounts are kept as ``Decimal`` in major units (dollars) and
quantized to cents, matching the ``NUMERIC(10, 2)`` columns they are
stored in. The payment provider wants integer cents; ``to_cents``
does that conversion in one place.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Self

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a value to a cent-quantized Decimal.

    Floats go through ``str`` so that 8.5 becomes exactly 8.50.

    Args:
        value: Amount in major units.

    Returns:
        Decimal quantized to two places.
    """
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount: Decimal) -> int:
    """Convert a major-unit amount to integer cents."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_usd(amount: Decimal) -> str:
    """Format an amount as ``$X.XX``."""
    return f"${to_money(amount):.2f}"


@dataclass(frozen=True)
class DeliveryWindow:
    """A delivery or pickup window label such as ``"09:00 - 11:00"``.

    Attributes:
        start: Window start as ``HH:MM``.
        end: Window end as ``HH:MM``, if the label has one.
    """

    start: str
    end: str | None = None

    @classmethod
    def parse(cls, label: str) -> Self:
        """Parse a window label.

        Args:
            label: Label in ``"start - end"`` form, or just ``"start"``.

        Returns:
            DeliveryWindow instance.
        """
        parts = [p.strip() for p in label.split(" - ", 1)]
        return cls(start=parts[0], end=parts[1] if len(parts) > 1 else None)

    def __str__(self) -> str:
        return f"{self.start} - {self.end}" if self.end else self.start
