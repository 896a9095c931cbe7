"""
Session cart.

Lines live in the caller's session mapping under ``"cart"`` as plain dicts so
they survive Flask's cookie session serializer. Prices are kept as decimal
strings.
"""
from decimal import Decimal

from Models.productModel import VARIANT_DIMENSIONS
from Utils.appError import ValidationError
from Utils.money import to_decimal

CART_KEY = "cart"


def display_name(name: str, size: str | None) -> str:
    return f"{name} (Size {size})" if size else name


def _normalize_size(size):
    if size is None:
        return None
    size = str(size).strip()
    return size or None


class SessionCart:
    def __init__(self, store):
        self._store = store

    # -------------------------
    # READ
    # -------------------------
    def _lines(self) -> list:
        return list(self._store.get(CART_KEY) or [])

    def _save(self, lines: list):
        # Reassign so the session registers the change
        self._store[CART_KEY] = lines

    def items(self) -> list:
        return [dict(line) for line in self._lines()]

    def is_empty(self) -> bool:
        return not self._lines()

    def total(self) -> Decimal:
        total = Decimal("0")
        for line in self._lines():
            total += to_decimal(line["unit_price"]) * int(line["quantity"])
        return total

    # -------------------------
    # WRITE
    # -------------------------
    def add(self, product, quantity: int = 1, size=None) -> dict:
        """Add a product, merging with a line only when id and size both match."""
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        size = _normalize_size(size)
        category = getattr(product, "category", None)
        self._check_variant(product.name, category, size)

        product_id = str(product.id)
        lines = self._lines()
        for line in lines:
            if line["product_id"] == product_id and line.get("size") == size:
                line["quantity"] = int(line["quantity"]) + quantity
                self._save(lines)
                return dict(line)

        line = {
            "product_id": product_id,
            "name": product.name,
            "unit_price": str(to_decimal(product.price)),
            "quantity": quantity,
            "category": category,
            "size": size,
            "display_name": display_name(product.name, size),
        }
        lines.append(line)
        self._save(lines)
        return dict(line)

    def update_size(self, index, size) -> dict:
        lines = self._lines()
        position = self._index(index, lines)
        line = lines[position]

        size = _normalize_size(size)
        self._check_variant(line["name"], line.get("category"), size)
        line["size"] = size
        line["display_name"] = display_name(line["name"], size)

        # Changing the size can make this line identical to another one
        for other_position, other in enumerate(lines):
            if other_position != position and other["product_id"] == line["product_id"] and other.get("size") == size:
                other["quantity"] = int(other["quantity"]) + int(line["quantity"])
                del lines[position]
                self._save(lines)
                return dict(other)

        self._save(lines)
        return dict(line)

    def remove(self, index) -> dict:
        lines = self._lines()
        removed = lines.pop(self._index(index, lines))
        self._save(lines)
        return removed

    def clear(self):
        self._save([])

    # -------------------------
    # HELPERS
    # -------------------------
    @staticmethod
    def _index(index, lines) -> int:
        try:
            position = int(index)
        except (TypeError, ValueError):
            raise ValidationError("Invalid cart line index")
        if position < 0 or position >= len(lines):
            raise ValidationError("Invalid cart line index")
        return position

    @staticmethod
    def _check_variant(name, category, size):
        label = VARIANT_DIMENSIONS.get(category)
        if label and not size:
            raise ValidationError(f"{label} is required for {name}")
        if not label and size:
            raise ValidationError(f"{name} does not come in sizes")
