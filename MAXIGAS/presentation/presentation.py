import uuid

from ViewModel.auth_context import RENEWAL_INTERVAL, AuthContext
from ViewModel.cart_manager import CartManager
from ViewModel.use_cases import UseCases
from ViewModel.user_manager import Administrador
from database.jwt_service import TOKEN_EXPIRATION, JWTService
from database.storage import LocalStorage, SessionStorage
from database.storage_service import StorageService
from database.storage_sync_service import StorageSyncService


class ViewModel:
    """Una pestaña: sesión propia sobre los datos compartidos del backend."""

    def __init__(self, backend, secret, algorithm="HS256", ttl_ms=TOKEN_EXPIRATION,
                 tab_id=None, clock=None, on_transition=None,
                 renewal_interval=RENEWAL_INTERVAL, session=None):
        self.tab_id = tab_id or uuid.uuid4().hex
        # Una recarga de la pestaña conserva su SessionStorage
        self.session = session if session is not None else SessionStorage()
        self.local = LocalStorage(backend, self.tab_id)
        self.jwt = JWTService(self.session, secret, algorithm, ttl_ms, clock)
        self.db = StorageService(self.local, self.session)
        self.sync = StorageSyncService(self.local)
        self.use_cases = UseCases(self.db, self.sync)
        self.user_manager = Administrador(self.db, self.sync)
        self.cart = CartManager(self.db)
        self._on_transition = on_transition
        self.auth = AuthContext(self.jwt, self.db, self.sync, self._transition, renewal_interval)
        self.sync.start_listening()
        self.auth.bootstrap()

    @classmethod
    def from_config(cls, backend, config, **kwargs):
        return cls(
            backend,
            secret=config["JWT_SECRET"],
            algorithm=config["JWT_ALGORITHM"],
            ttl_ms=config["TOKEN_TTL_HOURS"] * 60 * 60 * 1000,
            renewal_interval=config["TOKEN_RENEWAL_SECONDS"],
            **kwargs,
        )

    def _transition(self, state, user):
        user_id = user["id"] if user else None
        if user_id != self.cart.user_id:
            self.cart.set_user(user_id)
        if self._on_transition:
            self._on_transition(state, user)

    def close(self):
        """Cierre de la pestaña: deja de escuchar y detiene la renovación."""
        self.auth.close()
        self.sync.stop_listening()
        self.session.clear()

    # --- Sesión ---
    @property
    def current_user(self):
        return self.auth.current_user

    def login(self, email, password):
        return self.auth.login(email, password)

    def register(self, user_data):
        return self.auth.register(user_data)

    def logout(self):
        self.auth.logout()

    def update_profile(self, user_data):
        return self.auth.update_profile(user_data)

    def session_info(self):
        return {
            "isAuthenticated": self.auth.is_authenticated,
            "isAdmin": self.auth.is_admin,
            "isRepartidor": self.auth.is_repartidor,
            "isCliente": self.auth.is_cliente,
            "usuario": self.current_user,
        }

    # --- Carrito ---
    def agregar_al_carrito(self, producto_id):
        producto = self.db.find_product_by_id(producto_id)
        if not producto or producto.get("stock", 0) <= 0:
            return False
        return self.cart.add_to_cart(producto)

    def actualizar_cantidad(self, producto_id, cambio):
        return self.cart.update_quantity(producto_id, cambio)

    def quitar_del_carrito(self, producto_id):
        self.cart.remove_from_cart(producto_id)

    def vaciar_carrito(self):
        self.cart.clear_cart()

    def ver_carrito(self):
        return {
            "items": self.cart.cart,
            "total": self.cart.get_total(),
            "cantidad": self.cart.get_item_count(),
        }

    def checkout(self, datos_envio):
        res = self.use_cases.crear_pedido(self.current_user, self.cart.cart, datos_envio)
        if res.get("success"):
            self.cart.clear_cart()
        return res

    # --- Cliente ---
    def mis_pedidos(self):
        if not self.current_user:
            return []
        return self.use_cases.pedidos_cliente(self.current_user["id"])

    # --- Repartidor ---
    def cambiar_disponibilidad(self, disponible):
        if not self.auth.is_repartidor:
            return False
        res = self.user_manager.cambiar_disponibilidad(self.current_user["id"], disponible)
        return "success" in res

    def mis_entregas(self):
        return self.use_cases.pedidos_repartidor(self.current_user["id"])

    def iniciar_ruta(self, numero_solicitud):
        return self.use_cases.iniciar_ruta(numero_solicitud, self.current_user["id"])

    def completar_entrega(self, numero_solicitud):
        return self.use_cases.completar_entrega(numero_solicitud, self.current_user["id"])
