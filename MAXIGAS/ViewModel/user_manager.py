import logging
from datetime import datetime, timezone

from domain.usuario import FOTO_POR_DEFECTO, ROLES, Usuario

logger = logging.getLogger(__name__)


class Administrador:
    """Gestión de usuarios desde el panel de administración."""

    def __init__(self, storage_service, sync_service):
        self.storage = storage_service
        self.sync = sync_service

    def crear_usuario(self, data):
        if self.storage.find_user_by_email(data.get("email")):
            return {"error": "El email ya está registrado"}
        if self.storage.find_user_by_rut(data.get("rut")):
            return {"error": "El RUT ya está registrado"}
        try:
            usuario = Usuario.from_dict({
                **data,
                "id": self.storage.next_id("users"),
                "fechaRegistro": datetime.now(timezone.utc).isoformat(),
                "foto": data.get("foto") or FOTO_POR_DEFECTO,
            })
        except ValueError as e:
            return {"error": str(e)}
        if usuario.rol == "repartidor" and usuario.disponible is None:
            usuario.disponible = True
        self.storage.create_user(usuario.to_dict())
        logger.info("[ADMIN] Usuario creado: %r", usuario)
        self.sync.trigger_sync()
        return {"success": True, "user_id": usuario.id}

    def actualizar_usuario(self, user_id, data):
        usuario = self.storage.find_user_by_id(user_id)
        if not usuario:
            return {"error": "Usuario no encontrado"}
        if "rol" in data and data["rol"] not in ROLES:
            return {"error": f"rol debe ser uno de {ROLES}"}
        for campo, otro in (("email", self.storage.find_user_by_email), ("rut", self.storage.find_user_by_rut)):
            if campo in data and data[campo] != usuario.get(campo):
                existente = otro(data[campo])
                if existente and existente["id"] != user_id:
                    return {"error": f"El {campo} ya está registrado"}
        usuario.update({k: v for k, v in data.items() if k != "id"})
        self.storage.update_user(usuario)
        self.sync.trigger_sync()
        return {"success": True, "usuario": usuario}

    def listar_usuarios(self, rol=None):
        if rol:
            return self.storage.get_users_by_role(rol)
        return self.storage.get_users()

    def eliminar_usuario(self, user_id):
        usuario = self.storage.find_user_by_id(user_id)
        if not usuario:
            return {"error": "Usuario no encontrado"}
        if usuario.get("rol") == "admin":
            return {"error": "No se puede eliminar a un administrador"}
        self.storage.delete_user(user_id)
        logger.info("[ADMIN] Usuario eliminado: %s", usuario.get("email"))
        self.sync.trigger_sync()
        return {"success": True}

    def cambiar_disponibilidad(self, user_id, disponible):
        """Repartidor: marca si está disponible para recibir pedidos."""
        usuario = self.storage.find_user_by_id(user_id)
        if not usuario or usuario.get("rol") != "repartidor":
            return {"error": "Repartidor no encontrado"}
        usuario["disponible"] = bool(disponible)
        self.storage.update_user(usuario)
        self.sync.trigger_sync()
        return {"success": True, "disponible": usuario["disponible"]}
