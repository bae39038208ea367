from domain.pedido import ItemCarrito


class CartManager:
    """Carrito de un usuario en UNA pestaña (no se comparte entre pestañas)."""

    def __init__(self, storage_service, user_id=None):
        self.storage = storage_service
        self.user_id = user_id
        self.cart = []
        self.reload()

    def set_user(self, user_id):
        self.user_id = user_id
        self.reload()

    def reload(self):
        self.cart = self.storage.get_cart(self.user_id) if self.user_id else []

    def _save(self):
        self.storage.set_cart(self.user_id, self.cart)

    def _find(self, product_id):
        for item in self.cart:
            if item["id"] == product_id:
                return item
        return None

    def add_to_cart(self, product):
        """Agrega una unidad. False si no hay usuario o no queda stock."""
        if not self.user_id:
            return False
        item = self._find(product["id"])
        if item:
            if item["cantidad"] < product.get("stock", 0):
                item["cantidad"] += 1
            else:
                return False
        else:
            self.cart.append(ItemCarrito.from_producto(product).to_dict())
        self._save()
        return True

    def remove_from_cart(self, product_id):
        if not self.user_id:
            return
        self.cart = [item for item in self.cart if item["id"] != product_id]
        self._save()

    def update_quantity(self, product_id, change):
        """Suma `change` a la cantidad. Llegar a 0 quita el item; el stock se relee."""
        if not self.user_id:
            return False
        item = self._find(product_id)
        if not item:
            return False
        new_quantity = item["cantidad"] + change
        if new_quantity <= 0:
            self.remove_from_cart(product_id)
            return True
        product = self.storage.find_product_by_id(product_id)
        if product and new_quantity > product.get("stock", 0):
            return False
        item["cantidad"] = new_quantity
        self._save()
        return True

    def clear_cart(self):
        if not self.user_id:
            return
        self.cart = []
        self.storage.clear_cart(self.user_id)

    def get_total(self):
        return sum(item["precio"] * item["cantidad"] for item in self.cart)

    def get_item_count(self):
        return sum(item["cantidad"] for item in self.cart)

    def is_in_cart(self, product_id):
        return self._find(product_id) is not None

    def get_item_quantity(self, product_id):
        item = self._find(product_id)
        return item["cantidad"] if item else 0
