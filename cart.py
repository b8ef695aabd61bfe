"""
Session cart. Lives in memory only; nothing here is persisted.
"""

from typing import List

from schemas import Product, CartItem


class Cart:
    def __init__(self):
        self.items: List[CartItem] = []

    def add(self, product: Product, quantity: int) -> CartItem:
        """Merge into the existing line for this product, or append a new one.

        Stock is not checked here; that happens when the order is placed.
        """
        for index, item in enumerate(self.items):
            if item.id == product.id:
                merged = item.model_copy(update={"quantity": item.quantity + quantity})
                self.items[index] = merged
                return merged
        line = CartItem(**product.model_dump(), quantity=quantity)
        self.items.append(line)
        return line

    def remove(self, product_id: str) -> None:
        self.items = [item for item in self.items if item.id != product_id]

    def clear(self) -> None:
        self.items = []

    def is_empty(self) -> bool:
        return not self.items

    def __iter__(self):
        return iter(self.items)

    def __len__(self):
        return len(self.items)
