from typing import Dict, List

from errors import UnknownProduct
from models import CartItem, CartSnapshot

# Demo catalog; a real deployment would read these from a products API
SAMPLE_PRODUCTS = [
    {"id": "p1", "name": "Wireless Headphones", "price": 1500, "category": "electronics"},
    {"id": "p2", "name": "Smart Watch", "price": 2500, "category": "electronics"},
    {"id": "p3", "name": "Running Shoes", "price": 3000, "category": "sports"},
    {"id": "p4", "name": "Coffee Beans (1kg)", "price": 800, "category": "groceries"},
    {"id": "p5", "name": "Yoga Mat", "price": 1200, "category": "sports"},
    {"id": "p6", "name": "Novel Book Set", "price": 600, "category": "books"},
    {"id": "p7", "name": "Skincare Set", "price": 1800, "category": "beauty"},
    {"id": "p8", "name": "T-Shirt", "price": 500, "category": "fashion"},
]


class Cart:
    """
    Mutable cart owned by one session.

    The mutation methods are the only writers of cart lines. Readers take a
    `snapshot()`, which is immutable and stamped with a generation number.
    """

    def __init__(self, products: List[dict] = None):
        self._products: Dict[str, dict] = {p["id"]: p for p in (products or SAMPLE_PRODUCTS)}
        self._lines: List[CartItem] = []
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(lines=tuple(self._lines), generation=self._generation)

    def _replace(self, lines: List[CartItem]) -> CartSnapshot:
        if lines != self._lines:
            self._lines = lines
            self._generation += 1
        return self.snapshot()

    def add(self, product_id: str) -> CartSnapshot:
        product = self._products.get(product_id)
        if product is None:
            raise UnknownProduct(product_id)

        if any(line.productId == product_id for line in self._lines):
            lines = [
                line.model_copy(update={"quantity": line.quantity + 1})
                if line.productId == product_id else line
                for line in self._lines
            ]
        else:
            lines = self._lines + [CartItem(
                productId=product["id"],
                name=product["name"],
                category=product["category"],
                quantity=1,
                price=product["price"],
            )]
        return self._replace(lines)

    def update_quantity(self, product_id: str, delta: int) -> CartSnapshot:
        if not any(line.productId == product_id for line in self._lines):
            raise UnknownProduct(product_id)
        lines = []
        for line in self._lines:
            if line.productId == product_id:
                line = line.model_copy(update={"quantity": max(0, line.quantity + delta)})
            if line.quantity > 0:
                lines.append(line)
        return self._replace(lines)

    def remove(self, product_id: str) -> CartSnapshot:
        return self._replace([line for line in self._lines if line.productId != product_id])

    def clear(self) -> CartSnapshot:
        return self._replace([])
