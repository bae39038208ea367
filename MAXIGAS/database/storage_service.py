import json
import logging
import threading
import time

logger = logging.getLogger(__name__)

USERS = "users"
PRODUCTS = "products"
ORDERS = "orders"
CATEGORIES = "categories"
COLLECTIONS = (USERS, PRODUCTS, ORDERS, CATEGORIES)

CURRENT_USER_KEY = "current_user"
CART_PREFIX = "cart_"


class StorageService:
    """
    CRUD general para usuarios, productos, pedidos y categorías.

    Cada colección se guarda como un arreglo JSON bajo una clave fija del
    almacenamiento compartido y se lee/escribe completa. El carrito y el
    usuario actual viven en el almacenamiento privado de la pestaña.
    """

    _id_lock = threading.Lock()
    _last_id = 0

    def __init__(self, local_storage, session_storage):
        self.local = local_storage
        self.session = session_storage

    # --- Genérico ---
    def get_all(self, collection):
        raw = self.local.get_item(collection)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("[STORAGE] '%s' corrupto, se trata como vacío", collection)
            return []
        if not isinstance(data, list):
            logger.warning("[STORAGE] '%s' no es un arreglo, se trata como vacío", collection)
            return []
        registros = [item for item in data if isinstance(item, dict)]
        if len(registros) != len(data):
            logger.warning("[STORAGE] '%s' tiene %d elemento(s) inválidos, se ignoran",
                           collection, len(data) - len(registros))
        return registros

    def save_all(self, collection, items):
        self.local.set_item(collection, json.dumps(items, ensure_ascii=False))

    def find(self, collection, field, value):
        for item in self.get_all(collection):
            if item.get(field) == value:
                return item
        return None

    def filter(self, collection, field, value):
        return [item for item in self.get_all(collection) if item.get(field) == value]

    def create(self, collection, entity):
        items = self.get_all(collection)
        items.append(entity)
        self.save_all(collection, items)
        return entity

    def update(self, collection, entity):
        """Reemplaza el registro con el mismo id. No hace nada si no existe."""
        items = self.get_all(collection)
        for index, item in enumerate(items):
            if item.get("id") == entity.get("id"):
                items[index] = entity
                self.save_all(collection, items)
                return True
        return False

    def delete(self, collection, entity_id):
        items = self.get_all(collection)
        remaining = [item for item in items if item.get("id") != entity_id]
        if len(remaining) != len(items):
            self.save_all(collection, remaining)
            return True
        return False

    def next_id(self, collection):
        """Id numérico basado en el tiempo, sin repetir dentro del proceso."""
        highest = max((i.get("id", 0) for i in self.get_all(collection)
                       if isinstance(i.get("id"), int)), default=0)
        with StorageService._id_lock:
            new_id = max(int(time.time() * 1000), highest + 1, StorageService._last_id + 1)
            StorageService._last_id = new_id
        return new_id

    # --- Usuarios ---
    def get_users(self):
        return self.get_all(USERS)

    def set_users(self, users):
        self.save_all(USERS, users)

    def find_user_by_email(self, email):
        return self.find(USERS, "email", email)

    def find_user_by_id(self, user_id):
        return self.find(USERS, "id", user_id)

    def find_user_by_rut(self, rut):
        return self.find(USERS, "rut", rut)

    def get_users_by_role(self, rol):
        return self.filter(USERS, "rol", rol)

    def create_user(self, user):
        return self.create(USERS, user)

    def update_user(self, user):
        return self.update(USERS, user)

    def delete_user(self, user_id):
        return self.delete(USERS, user_id)

    # --- Productos ---
    def get_products(self):
        return self.get_all(PRODUCTS)

    def set_products(self, products):
        self.save_all(PRODUCTS, products)

    def find_product_by_id(self, product_id):
        return self.find(PRODUCTS, "id", product_id)

    def create_product(self, product):
        return self.create(PRODUCTS, product)

    def update_product(self, product):
        return self.update(PRODUCTS, product)

    def delete_product(self, product_id):
        return self.delete(PRODUCTS, product_id)

    # --- Pedidos ---
    def get_orders(self):
        return self.get_all(ORDERS)

    def set_orders(self, orders):
        self.save_all(ORDERS, orders)

    def find_order_by_id(self, order_id):
        return self.find(ORDERS, "id", order_id)

    def find_order_by_number(self, numero_solicitud):
        return self.find(ORDERS, "numeroSolicitud", numero_solicitud)

    def create_order(self, order):
        return self.create(ORDERS, order)

    def update_order(self, order):
        return self.update(ORDERS, order)

    def get_orders_by_client(self, client_id):
        return self.filter(ORDERS, "clienteId", client_id)

    def get_orders_by_delivery(self, repartidor_id):
        return self.filter(ORDERS, "repartidorAsignado", repartidor_id)

    # --- Categorías ---
    def get_categories(self):
        return self.get_all(CATEGORIES)

    def set_categories(self, categories):
        self.save_all(CATEGORIES, categories)

    def find_category_by_id(self, category_id):
        return self.find(CATEGORIES, "id", category_id)

    def find_category_by_name(self, nombre):
        return self.find(CATEGORIES, "nombre", nombre)

    def create_category(self, category):
        return self.create(CATEGORIES, category)

    def update_category(self, category):
        return self.update(CATEGORIES, category)

    def delete_category(self, category_id):
        return self.delete(CATEGORIES, category_id)

    # --- Carrito (privado de la pestaña) ---
    def _load_private(self, key, default):
        raw = self.session.get_item(key)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("[STORAGE] '%s' corrupto en la sesión, se descarta", key)
            return default

    def get_cart(self, user_id):
        cart = self._load_private(f"{CART_PREFIX}{user_id}", [])
        return cart if isinstance(cart, list) else []

    def set_cart(self, user_id, cart):
        self.session.set_item(f"{CART_PREFIX}{user_id}", json.dumps(cart, ensure_ascii=False))

    def clear_cart(self, user_id):
        self.session.remove_item(f"{CART_PREFIX}{user_id}")

    # --- Sesión actual (privada de la pestaña) ---
    def get_current_user(self):
        user = self._load_private(CURRENT_USER_KEY, None)
        return user if isinstance(user, dict) else None

    def set_current_user(self, user):
        self.session.set_item(CURRENT_USER_KEY, json.dumps(user, ensure_ascii=False))

    def clear_current_user(self):
        self.session.remove_item(CURRENT_USER_KEY)
