import uuid
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional

from inventory.services import quantize_money


@dataclass(frozen=True)
class LineItemSnapshot:
    """What was sold, as it looked at transaction time.

    Stays valid after the live product, variant or category is deleted and is
    the only input used when a return has to rebuild them.
    """

    variant_id: Optional[uuid.UUID]
    product_name: str
    category_name: str
    size: str
    unit: str
    color: str
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return quantize_money(self.price * self.quantity)

    @classmethod
    def capture(cls, variant, quantity: int, price: Decimal) -> "LineItemSnapshot":
        product = variant.product
        return cls(
            variant_id=variant.pk,
            product_name=product.name,
            category_name=product.category.name if product.category_id else "",
            size=variant.size or "",
            unit=variant.unit or "",
            color=variant.color or "",
            quantity=int(quantity),
            price=quantize_money(price),
        )

    def as_fields(self) -> Dict[str, Any]:
        fields = asdict(self)
        fields["subtotal"] = self.subtotal
        return fields
