"""
Sustrato de almacenamiento clave/valor.

- SessionStorage: área privada de una pestaña (token, usuario actual, carrito).
- MemoryBackend / FirebaseBackend: almacenamiento compartido por todas las pestañas.
- LocalStorage: vista de una pestaña sobre el backend compartido. Sus listeners
  solo reciben cambios escritos por OTRAS pestañas, igual que el evento
  `storage` del navegador.
"""
import logging
import threading
from collections import namedtuple

from firebase_admin import db

logger = logging.getLogger(__name__)

StorageEvent = namedtuple("StorageEvent", ["key", "old_value", "new_value", "source"])


class SessionStorage:
    """Área privada de una pestaña. Se pierde al cerrar la pestaña."""

    def __init__(self):
        self._items = {}

    def get_item(self, key):
        return self._items.get(key)

    def set_item(self, key, value):
        self._items[key] = str(value)

    def remove_item(self, key):
        self._items.pop(key, None)

    def clear(self):
        self._items.clear()

    def keys(self):
        return list(self._items)

    def __contains__(self, key):
        return key in self._items

    def __len__(self):
        return len(self._items)


class MemoryBackend:
    """Almacenamiento compartido en memoria del proceso (un 'origen')."""

    def __init__(self):
        self._items = {}
        self._listeners = []
        self._lock = threading.RLock()

    def read(self, key):
        with self._lock:
            return self._items.get(key)

    def write(self, key, value, source=None):
        with self._lock:
            old_value = self._items.get(key)
            self._items[key] = value
        # Los listeners corren fuera del lock: pueden tomar locks de otras pestañas
        self._dispatch(StorageEvent(key, old_value, value, source))

    def delete(self, key, source=None):
        with self._lock:
            if key not in self._items:
                return
            old_value = self._items.pop(key)
        self._dispatch(StorageEvent(key, old_value, None, source))

    def keys(self):
        with self._lock:
            return list(self._items)

    def add_listener(self, callback):
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback):
        with self._lock:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

    def _dispatch(self, event):
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(event)
            except Exception:
                logger.exception("[STORAGE] Error en listener para '%s'", event.key)

    def close(self):
        with self._lock:
            self._listeners.clear()


class FirebaseBackend(MemoryBackend):
    """Almacenamiento compartido sobre Firebase Realtime Database.

    Cada clave se guarda como hijo de `root` con el valor serializado (string).
    Los cambios remotos llegan por `reference.listen()` y se despachan con
    `source=None`; los ecos de nuestras propias escrituras se descartan.
    """

    def __init__(self, root="maxigas"):
        super().__init__()
        self.ref = db.reference(root)
        self._registration = None

    def read(self, key):
        with self._lock:
            if key in self._items:
                return self._items[key]
        value = self.ref.child(key).get()
        with self._lock:
            if value is not None:
                self._items[key] = value
            return value

    def write(self, key, value, source=None):
        self.ref.child(key).set(value)
        super().write(key, value, source)

    def delete(self, key, source=None):
        self.ref.child(key).delete()
        super().delete(key, source)

    def start(self):
        """Abre el stream de cambios remotos (idempotente)."""
        if self._registration is None:
            self._registration = self.ref.listen(self._on_remote_event)
            logger.info("[FIREBASE] Escuchando cambios en '%s'", self.ref.path)

    def close(self):
        if self._registration is not None:
            self._registration.close()
            self._registration = None
        super().close()

    def _on_remote_event(self, event):
        path = (event.path or "/").strip("/")
        if not path:
            # Snapshot completo (evento inicial o reemplazo de la raíz)
            for key, value in (event.data or {}).items():
                self._apply_remote(key, value)
            return
        key = path.split("/", 1)[0]
        if "/" in path:
            # Escritura parcial de otro cliente: se relee la clave completa
            value = self.ref.child(key).get()
        else:
            value = event.data
        self._apply_remote(key, value)

    def _apply_remote(self, key, value):
        with self._lock:
            old_value = self._items.get(key)
            if old_value == value:
                return
            if value is None:
                self._items.pop(key, None)
            else:
                self._items[key] = value
        self._dispatch(StorageEvent(key, old_value, value, None))


class LocalStorage:
    """Vista de una pestaña sobre el almacenamiento compartido."""

    def __init__(self, backend, tab_id):
        self.backend = backend
        self.tab_id = tab_id
        self._wrappers = {}

    def get_item(self, key):
        return self.backend.read(key)

    def set_item(self, key, value):
        self.backend.write(key, str(value), source=self.tab_id)

    def remove_item(self, key):
        self.backend.delete(key, source=self.tab_id)

    def keys(self):
        return self.backend.keys()

    def add_listener(self, callback):
        """Registra `callback(event)` para cambios hechos en otras pestañas."""
        if callback in self._wrappers:
            return

        def wrapper(event):
            if event.source is not None and event.source == self.tab_id:
                return
            callback(event)

        self._wrappers[callback] = wrapper
        self.backend.add_listener(wrapper)

    def remove_listener(self, callback):
        wrapper = self._wrappers.pop(callback, None)
        if wrapper is not None:
            self.backend.remove_listener(wrapper)
