import logging
import threading
from datetime import datetime, timezone

from domain.usuario import FOTO_POR_DEFECTO

logger = logging.getLogger(__name__)

UNAUTHENTICATED = "unauthenticated"
AUTHENTICATING = "authenticating"
AUTHENTICATED = "authenticated"

RENEWAL_INTERVAL = 5 * 60

# Campos del usuario que viajan en el payload del token
TOKEN_CAMPOS = ("email", "rol")


class AuthContext:
    """Estado de autenticación de UNA pestaña.

    El usuario en caché es una copia: la fuente de verdad es el StorageService.
    Cuando el bus de sincronización avisa un cambio, se vuelve a leer el
    registro del usuario actual.

    El lock de la pestaña no se mantiene mientras se escribe en el
    almacenamiento compartido: esa escritura ejecuta los callbacks de las
    demás pestañas, que toman su propio lock.
    """

    def __init__(self, jwt_service, storage_service, sync_service, on_transition=None,
                 renewal_interval=RENEWAL_INTERVAL):
        self.jwt = jwt_service
        self.storage = storage_service
        self.sync = sync_service
        self.on_transition = on_transition
        self.renewal_interval = renewal_interval
        self.current_user = None
        self.state = UNAUTHENTICATED
        self._lock = threading.RLock()
        self._timer = None
        self._unsubscribe = self.sync.subscribe(self.refresh_current_user)

    # --- Flags derivados ---
    @property
    def is_authenticated(self):
        return self.current_user is not None

    @property
    def is_admin(self):
        return self._rol() == "admin"

    @property
    def is_repartidor(self):
        return self._rol() == "repartidor"

    @property
    def is_cliente(self):
        return self._rol() == "cliente"

    def _rol(self):
        return self.current_user.get("rol") if self.current_user else None

    # --- Transiciones ---
    def _set_state(self, state, user=None):
        self.state = state
        if user is not None:
            logger.info("[AUTH] %s rol=%s id=%s email=%s", state, user.get("rol"),
                        user.get("id"), user.get("email"))
        else:
            logger.info("[AUTH] %s", state)
        if self.on_transition:
            try:
                self.on_transition(state, user)
            except Exception:
                logger.exception("[AUTH] Error en el hook de transición")

    def _authenticate(self, user):
        self.jwt.save_token(self.jwt.generate_token(user))
        self.current_user = user
        self.storage.set_current_user(user)
        self._set_state(AUTHENTICATED, user)

    def _clear_session(self):
        self.jwt.remove_token()
        self.storage.clear_current_user()
        self.current_user = None

    def bootstrap(self):
        """Restaura la sesión de la pestaña desde su token, si sigue siendo válido."""
        with self._lock:
            payload = self.jwt.get_token_payload()
            if not payload:
                self._clear_session()
                self._set_state(UNAUTHENTICATED)
                return False
            self._set_state(AUTHENTICATING)
            user = self.storage.find_user_by_id(payload["userId"])
            if not user:
                logger.warning("[AUTH] El usuario %s del token ya no existe", payload["userId"])
                self._clear_session()
                self._set_state(UNAUTHENTICATED)
                return False
            self.current_user = user
            self.storage.set_current_user(user)
            self._set_state(AUTHENTICATED, user)
            return True

    def login(self, email, password):
        with self._lock:
            self._set_state(AUTHENTICATING)
            user = self.storage.find_user_by_email(email)
            # Comparación en texto plano, igual que los registros existentes
            if user and user.get("password") == password:
                self._authenticate(user)
                return True
            logger.info("[LOGIN] Credenciales inválidas para %s", email)
            self._set_state(AUTHENTICATED if self.current_user else UNAUTHENTICATED, self.current_user)
            return False

    def register(self, user_data):
        """Registra y deja autenticado a un usuario nuevo. False si email o RUT ya existen."""
        if self.storage.find_user_by_email(user_data.get("email")):
            logger.info("[REGISTER] Email ya registrado: %s", user_data.get("email"))
            return False
        if self.storage.find_user_by_rut(user_data.get("rut")):
            logger.info("[REGISTER] RUT ya registrado: %s", user_data.get("rut"))
            return False

        with self._lock:
            self._set_state(AUTHENTICATING)
        new_user = dict(user_data)
        new_user["id"] = self.storage.next_id("users")
        new_user["fechaRegistro"] = datetime.now(timezone.utc).isoformat()
        new_user["foto"] = FOTO_POR_DEFECTO
        new_user["rol"] = new_user.get("rol") or "cliente"
        self.storage.create_user(new_user)
        with self._lock:
            self._authenticate(new_user)
        self.sync.trigger_sync()
        return True

    def logout(self):
        with self._lock:
            self._clear_session()
            self._set_state(UNAUTHENTICATED)

    def update_profile(self, user_data):
        with self._lock:
            if not self.current_user:
                return False
            updated = {**self.current_user, **user_data, "id": self.current_user["id"]}
        self.storage.update_user(updated)
        with self._lock:
            self._authenticate(updated)
        self.sync.trigger_sync()
        return True

    def refresh_current_user(self):
        """Callback del bus: vuelve a leer el usuario actual desde el almacenamiento."""
        with self._lock:
            if not self.current_user:
                return
            fresh = self.storage.find_user_by_id(self.current_user["id"])
            if not fresh:
                logger.warning("[AUTH] Usuario %s eliminado en otra pestaña", self.current_user["id"])
                self._clear_session()
                self._set_state(UNAUTHENTICATED)
                return
            if fresh == self.current_user:
                return
            if any(fresh.get(campo) != self.current_user.get(campo) for campo in TOKEN_CAMPOS):
                self.jwt.save_token(self.jwt.generate_token(fresh))
            self.current_user = fresh
            self.storage.set_current_user(fresh)
            logger.debug("[AUTH] Usuario %s actualizado desde otra pestaña", fresh["id"])

    # --- Renovación periódica del token ---
    def check_token_renewal(self):
        with self._lock:
            if not self.current_user:
                return False
            return self.jwt.refresh_token_if_needed(self.current_user)

    def start_token_renewal(self):
        def tick():
            try:
                self.check_token_renewal()
            finally:
                if self._timer is not None:
                    self._schedule(tick)

        if self._timer is None:
            self._schedule(tick)

    def _schedule(self, tick):
        self._timer = threading.Timer(self.renewal_interval, tick)
        self._timer.daemon = True
        self._timer.start()

    def stop_token_renewal(self):
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def close(self):
        self.stop_token_renewal()
        self._unsubscribe()
