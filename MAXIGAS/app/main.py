import logging
import threading
import time
from functools import wraps

from flask import Flask, current_app, g, request, session

from app.config import Config
from database.firebase_config import init_firebase
from database.init_data import initialize_data
from database.jwt_service import TOKEN_KEY
from database.storage import FirebaseBackend, LocalStorage, MemoryBackend, SessionStorage
from database.storage_service import StorageService
from domain.validaciones import validar_registro
from presentation.presentation import ViewModel

logger = logging.getLogger(__name__)

# Campos que un usuario puede cambiar en su propio perfil
PERFIL_CAMPOS = ("nombre", "apellidos", "telefono", "direccion", "comuna", "foto", "password")


def create_backend(config):
    kind = config["STORAGE_BACKEND"]
    if kind == "memory":
        return MemoryBackend()
    if kind == "firebase":
        init_firebase(config["FIREBASE_CREDENTIALS_PATH"], config["FIREBASE_DB_URL"])
        backend = FirebaseBackend(config["FIREBASE_ROOT"])
        backend.start()
        return backend
    raise ValueError(f"STORAGE_BACKEND desconocido: {kind}")


def _tabs():
    return current_app.extensions["maxigas"]


def current_tab():
    """La pestaña (ViewModel) asociada a la cookie de sesión de este cliente.

    Solo las pestañas con sesión iniciada quedan en el registro. Un cliente
    anónimo recibe una pestaña transitoria que se cierra al terminar la
    petición, salvo que en ella inicie sesión.
    """
    registry = _tabs()
    tab_id = session.get("tab_id")
    with registry["lock"]:
        _evict_idle(registry, current_app.config["TAB_IDLE_SECONDS"])
        tab = registry["tabs"].get(tab_id) if tab_id else None
        if tab is not None:
            registry["seen"][tab_id] = time.monotonic()
            return tab
    # Pestaña desconocida (nueva o servidor reiniciado): se recupera su token
    private = SessionStorage()
    if session.get(TOKEN_KEY):
        private.set_item(TOKEN_KEY, session[TOKEN_KEY])
    return ViewModel.from_config(registry["backend"], current_app.config,
                                 tab_id=tab_id, session=private)


def _is_registered(tab):
    return _tabs()["tabs"].get(tab.tab_id) is tab


def _keep_tab(tab):
    registry = _tabs()
    with registry["lock"]:
        registry["tabs"][tab.tab_id] = tab
        registry["seen"][tab.tab_id] = time.monotonic()
    session["tab_id"] = tab.tab_id
    tab.auth.start_token_renewal()
    logger.debug("[TAB] Pestaña %s registrada", tab.tab_id)


def _evict_idle(registry, max_idle):
    """Cierra las pestañas sin peticiones en los últimos `max_idle` segundos."""
    limit = time.monotonic() - max_idle
    for tab_id in [t for t, seen in registry["seen"].items() if seen <= limit]:
        del registry["seen"][tab_id]
        tab = registry["tabs"].pop(tab_id, None)
        if tab is not None:
            tab.close()
            logger.info("[TAB] Pestaña %s cerrada por inactividad", tab_id)


def _respond(res, ok=200, error=400):
    if "error" in res:
        return res, error
    return res, ok


def role_required(*roles):
    """401 sin sesión; 403 si el rol de la pestaña no está en `roles`."""
    def decorator(view_func):
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            tab = g.tab
            if not tab.auth.is_authenticated:
                return {"error": "Debes iniciar sesión"}, 401
            if roles and tab.current_user.get("rol") not in roles:
                return {"error": "No autorizado"}, 403
            return view_func(*args, **kwargs)
        return wrapped
    return decorator


def _json():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def create_app(config_class=Config, backend=None):
    app = Flask(__name__)
    app.config.from_object(config_class)
    logging.basicConfig(level=app.config["LOG_LEVEL"],
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    backend = backend or create_backend(app.config)
    if app.config["SEED_DATA"]:
        initialize_data(StorageService(LocalStorage(backend, "init"), SessionStorage()))
    app.extensions["maxigas"] = {"backend": backend, "tabs": {}, "seen": {}, "lock": threading.Lock()}
    logger.info("[CONFIG] STORAGE_BACKEND=%s JWT_ALGORITHM=%s",
                app.config["STORAGE_BACKEND"], app.config["JWT_ALGORITHM"])

    @app.before_request
    def load_tab():
        logger.debug("[REQ] %s %s", request.method, request.path)
        g.tab = current_tab()
        g.tab.auth.check_token_renewal()

    @app.after_request
    def persist_token(response):
        tab = g.get("tab")
        if tab is not None:
            if tab.auth.is_authenticated and not _is_registered(tab):
                _keep_tab(tab)
            token = tab.jwt.get_token()
            if token:
                session[TOKEN_KEY] = token
            else:
                session.pop(TOKEN_KEY, None)
        return response

    @app.teardown_request
    def close_transient_tab(exc):
        tab = g.get("tab")
        if tab is not None and not _is_registered(tab):
            tab.close()

    # --- Sesión ---
    @app.get("/api/session")
    def session_info():
        return g.tab.session_info()

    @app.post("/api/register")
    def register():
        data = _json()
        error = validar_registro(data)
        if error:
            return {"error": error}, 400
        campos = ("nombre", "apellidos", "rut", "fechaNacimiento", "email", "password",
                  "telefono", "direccion", "comuna")
        user_data = {k: data[k] for k in campos if k in data}
        user_data["rol"] = "cliente"
        if not g.tab.register(user_data):
            return {"error": "El email o RUT ya está registrado"}, 409
        return g.tab.session_info(), 201

    @app.post("/api/login")
    def login():
        data = _json()
        email = str(data.get("email") or "").strip()
        password = str(data.get("password") or "")
        if not email or not password:
            return {"error": "Email y contraseña son requeridos"}, 400
        if not g.tab.login(email, password):
            return {"error": "Email o contraseña incorrectos"}, 401
        return g.tab.session_info()

    @app.post("/api/logout")
    def logout():
        g.tab.logout()
        return {"success": True}

    @app.post("/api/tab/close")
    def close_tab():
        registry = _tabs()
        with registry["lock"]:
            registry["tabs"].pop(g.tab.tab_id, None)
            registry["seen"].pop(g.tab.tab_id, None)
        g.tab.close()
        g.tab = None
        session.clear()
        return {"success": True}

    @app.patch("/api/profile")
    @role_required()
    def update_profile():
        data = {k: v for k, v in _json().items() if k in PERFIL_CAMPOS}
        if not data:
            return {"error": "Nada que actualizar"}, 400
        g.tab.update_profile(data)
        return g.tab.session_info()

    # --- Catálogo ---
    @app.get("/api/productos")
    def productos():
        return {"productos": g.tab.use_cases.listar_productos(request.args.get("categoria"))}

    @app.get("/api/categorias")
    def categorias():
        return {"categorias": g.tab.use_cases.listar_categorias()}

    # --- Carrito ---
    @app.get("/api/carrito")
    @role_required()
    def ver_carrito():
        return g.tab.ver_carrito()

    @app.post("/api/carrito")
    @role_required("cliente")
    def agregar_carrito():
        producto_id = _json().get("producto_id")
        if not g.tab.agregar_al_carrito(producto_id):
            return {"error": "No hay suficiente stock disponible"}, 409
        return g.tab.ver_carrito()

    @app.patch("/api/carrito/<int:producto_id>")
    @role_required("cliente")
    def cambiar_cantidad(producto_id):
        try:
            cambio = int(_json().get("cambio", 0))
        except (TypeError, ValueError):
            return {"error": "cambio debe ser un entero"}, 400
        if not g.tab.actualizar_cantidad(producto_id, cambio):
            return {"error": "No hay suficiente stock disponible"}, 409
        return g.tab.ver_carrito()

    @app.delete("/api/carrito/<int:producto_id>")
    @role_required("cliente")
    def quitar_carrito(producto_id):
        g.tab.quitar_del_carrito(producto_id)
        return g.tab.ver_carrito()

    @app.delete("/api/carrito")
    @role_required("cliente")
    def vaciar_carrito():
        g.tab.vaciar_carrito()
        return g.tab.ver_carrito()

    # --- Pedidos del cliente ---
    @app.post("/api/pedidos")
    @role_required("cliente")
    def checkout():
        data = _json()
        for campo in ("direccion", "comuna", "telefono", "metodoPago"):
            if not data.get(campo):
                return {"error": f"El campo {campo} es requerido"}, 400
        return _respond(g.tab.checkout(data), ok=201)

    @app.get("/api/pedidos")
    @role_required("cliente")
    def mis_pedidos():
        return {"pedidos": g.tab.mis_pedidos()}

    # --- Repartidor ---
    @app.get("/api/repartidor/pedidos")
    @role_required("repartidor")
    def repartidor_pedidos():
        return g.tab.mis_entregas()

    @app.post("/api/repartidor/disponibilidad")
    @role_required("repartidor")
    def repartidor_disponibilidad():
        g.tab.cambiar_disponibilidad(_json().get("disponible", False))
        return {"disponible": g.tab.current_user.get("disponible")}

    @app.post("/api/repartidor/pedidos/<numero>/iniciar")
    @role_required("repartidor")
    def repartidor_iniciar(numero):
        return _respond(g.tab.iniciar_ruta(numero))

    @app.post("/api/repartidor/pedidos/<numero>/entregar")
    @role_required("repartidor")
    def repartidor_entregar(numero):
        return _respond(g.tab.completar_entrega(numero))

    # --- Administración: pedidos ---
    @app.get("/api/admin/dashboard")
    @role_required("admin")
    def admin_dashboard():
        return {
            "estadisticas": g.tab.use_cases.estadisticas_dashboard(),
            "stockCritico": g.tab.use_cases.productos_stock_critico(),
        }

    @app.get("/api/admin/reportes")
    @role_required("admin")
    def admin_reportes():
        return _respond(g.tab.use_cases.reportes(request.args.get("periodo", "semana")))

    @app.get("/api/admin/pedidos")
    @role_required("admin")
    def admin_pedidos():
        return {"pedidos": g.tab.use_cases.listar_pedidos(request.args.get("estado"))}

    @app.post("/api/admin/pedidos/<int:pedido_id>/asignar")
    @role_required("admin")
    def admin_asignar(pedido_id):
        return _respond(g.tab.use_cases.asignar_repartidor(pedido_id, _json().get("repartidor_id")))

    @app.post("/api/admin/pedidos/<numero>/cancelar")
    @role_required("admin")
    def admin_cancelar(numero):
        return _respond(g.tab.use_cases.cancelar_pedido(numero))

    # --- Administración: productos ---
    @app.post("/api/admin/productos")
    @role_required("admin")
    def admin_crear_producto():
        data = _json()
        if not data.get("nombre"):
            return {"error": "Nombre requerido"}, 400
        res = g.tab.use_cases.crear_producto(
            data["nombre"], data.get("precio"), data.get("stock"),
            categoria=data.get("categoria", ""),
            descripcion=data.get("descripcion", ""),
            stock_critico=data.get("stockCritico") or 0,
            imagen=data.get("imagen", ""),
        )
        return _respond(res, ok=201)

    @app.put("/api/admin/productos/<int:producto_id>")
    @role_required("admin")
    def admin_actualizar_producto(producto_id):
        return _respond(g.tab.use_cases.actualizar_producto(producto_id, _json()))

    @app.delete("/api/admin/productos/<int:producto_id>")
    @role_required("admin")
    def admin_eliminar_producto(producto_id):
        return _respond(g.tab.use_cases.eliminar_producto(producto_id), error=404)

    @app.post("/api/admin/productos/<int:producto_id>/stock")
    @role_required("admin")
    def admin_agregar_stock(producto_id):
        return _respond(g.tab.use_cases.agregar_stock(producto_id, _json().get("cantidad")))

    # --- Administración: categorías ---
    @app.post("/api/admin/categorias")
    @role_required("admin")
    def admin_crear_categoria():
        data = _json()
        return _respond(g.tab.use_cases.crear_categoria(data.get("nombre"), data.get("descripcion", "")), ok=201)

    @app.put("/api/admin/categorias/<int:categoria_id>")
    @role_required("admin")
    def admin_actualizar_categoria(categoria_id):
        data = _json()
        return _respond(g.tab.use_cases.actualizar_categoria(
            categoria_id, data.get("nombre"), data.get("descripcion")))

    @app.delete("/api/admin/categorias/<int:categoria_id>")
    @role_required("admin")
    def admin_eliminar_categoria(categoria_id):
        return _respond(g.tab.use_cases.eliminar_categoria(categoria_id))

    # --- Administración: usuarios ---
    @app.get("/api/admin/usuarios")
    @role_required("admin")
    def admin_usuarios():
        return {"usuarios": g.tab.user_manager.listar_usuarios(request.args.get("rol"))}

    @app.post("/api/admin/usuarios")
    @role_required("admin")
    def admin_crear_usuario():
        return _respond(g.tab.user_manager.crear_usuario(_json()), ok=201)

    @app.put("/api/admin/usuarios/<int:user_id>")
    @role_required("admin")
    def admin_actualizar_usuario(user_id):
        return _respond(g.tab.user_manager.actualizar_usuario(user_id, _json()))

    @app.delete("/api/admin/usuarios/<int:user_id>")
    @role_required("admin")
    def admin_eliminar_usuario(user_id):
        return _respond(g.tab.user_manager.eliminar_usuario(user_id))

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
