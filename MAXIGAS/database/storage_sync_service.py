import logging
import threading

from database.storage_service import COLLECTIONS

logger = logging.getLogger(__name__)

# Solo se sincronizan DATOS. Token, usuario actual y carrito son de cada pestaña.
SYNC_KEYS = frozenset(COLLECTIONS)


class StorageSyncService:
    """Avisa a los suscriptores de la pestaña cuando cambian los datos compartidos.

    Dos fuentes: cambios hechos por otras pestañas (listener del LocalStorage)
    y el aviso local `trigger_sync()` que usan los escritores de esta misma
    pestaña, porque el almacenamiento no notifica a quien escribe.

    Suscribir dos veces el mismo callback crea dos suscripciones: se llama dos
    veces y cada una se cancela con su propio `unsubscribe`.
    """

    def __init__(self, local_storage):
        self.local = local_storage
        self._subscriptions = []
        self._lock = threading.RLock()
        self.is_listening = False

    def start_listening(self):
        with self._lock:
            if self.is_listening:
                return
            self.local.add_listener(self._handle_storage_change)
            self.is_listening = True
        logger.info("[SYNC] Sincronización de datos entre pestañas activada (%s)", self.local.tab_id)

    def stop_listening(self):
        with self._lock:
            if not self.is_listening:
                return
            self.local.remove_listener(self._handle_storage_change)
            self.is_listening = False
        logger.info("[SYNC] Sincronización de datos desactivada (%s)", self.local.tab_id)

    def subscribe(self, callback):
        """Registra `callback()` y devuelve la función para desuscribirlo."""
        token = object()
        with self._lock:
            self._subscriptions.append((token, callback))

        def unsubscribe():
            with self._lock:
                self._subscriptions[:] = [s for s in self._subscriptions if s[0] is not token]

        return unsubscribe

    @property
    def subscriber_count(self):
        return len(self._subscriptions)

    def trigger_sync(self):
        """Aviso para la misma pestaña después de una escritura local."""
        if not self.is_listening:
            return
        logger.debug("[SYNC] Datos actualizados en esta pestaña")
        self._notify_listeners()

    def _handle_storage_change(self, event):
        if event.key not in SYNC_KEYS:
            return
        logger.debug("[SYNC] Datos actualizados en otra pestaña: %s", event.key)
        self._notify_listeners()

    def _notify_listeners(self):
        with self._lock:
            callbacks = [callback for _, callback in self._subscriptions]
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("[SYNC] Error al ejecutar callback de sincronización")
