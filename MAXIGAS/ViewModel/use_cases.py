import logging
import math
from datetime import date, datetime, timedelta, timezone

from domain.categoria import Categoria
from domain.pedido import (ASIGNADO, CANCELADO, EN_RUTA, ENTREGADO, ENVIO, ESTADOS,
                           PENDIENTE, ItemCarrito, Pedido)
from domain.producto import Producto, es_stock_critico, estado_stock
from domain.usuario import Usuario

logger = logging.getLogger(__name__)

# Días cubiertos por cada periodo del reporte de ventas
PERIODOS = {"dia": 1, "semana": 7, "mes": 30}
TOP_PRODUCTOS = 5


def _ahora():
    return datetime.now(timezone.utc).isoformat()


def _es_del_dia(fecha_iso, dia):
    try:
        fecha = datetime.fromisoformat(fecha_iso)
    except (TypeError, ValueError):
        return False
    if fecha.tzinfo is not None:
        fecha = fecha.astimezone()
    return fecha.date() == dia


def _numero(valor, entero=False):
    """Convierte números o textos numéricos; TypeError/ValueError si no se puede."""
    if isinstance(valor, bool):
        raise TypeError("se esperaba un número")
    numero = float(valor)
    if not math.isfinite(numero) or (entero and not numero.is_integer()):
        raise ValueError(f"número inválido: {valor!r}")
    return int(numero) if numero.is_integer() else numero


def _nombre_completo(usuario):
    return Usuario.from_dict(usuario).nombre_completo


class UseCases:
    def __init__(self, storage_service, sync_service):
        self.storage = storage_service
        self.sync = sync_service

    # --- Checkout / Pedidos ---
    def crear_pedido(self, usuario, items, datos_envio):
        """Crea un pedido 'Pendiente' con los precios del carrito y descuenta stock."""
        if not usuario:
            return {"error": "Debes iniciar sesión para realizar un pedido"}
        if not items:
            return {"error": "El carrito está vacío"}

        productos = self.storage.get_products()
        por_id = {p["id"]: p for p in productos}
        for item in items:
            producto = por_id.get(item["id"])
            if producto is None:
                return {"error": f"El producto {item.get('nombre', item['id'])} ya no existe"}
            if producto.get("stock", 0) < item["cantidad"]:
                return {"error": f"No hay suficiente stock de {producto['nombre']}"}

        pedido = Pedido(
            id=self.storage.next_id("orders"),
            cliente_id=usuario["id"],
            cliente_nombre=_nombre_completo(usuario),
            items=[ItemCarrito.from_dict(item) for item in items],
            direccion=datos_envio.get("direccion", ""),
            comuna=datos_envio.get("comuna", ""),
            telefono=datos_envio.get("telefono", ""),
            metodo_pago=datos_envio.get("metodoPago", ""),
            fecha=_ahora(),
            envio=ENVIO,
        )
        data = pedido.to_dict()
        self.storage.create_order(data)

        for item in pedido.items:
            producto = por_id[item.id]
            producto["stock"] -= item.cantidad
            producto["estado"] = estado_stock(producto)
        self.storage.set_products(productos)

        logger.info("[PEDIDO] %s creado para cliente %s (total %s)",
                    data["numeroSolicitud"], usuario["id"], data["total"])
        self.sync.trigger_sync()
        return {"success": True, "pedido": data}

    def cancelar_pedido(self, numero_solicitud):
        """Solo un pedido 'Pendiente' se puede cancelar; el stock vuelve a los productos."""
        pedido = self.storage.find_order_by_number(numero_solicitud)
        if not pedido:
            return {"error": "Pedido no encontrado"}
        if pedido["estado"] != PENDIENTE:
            return {"error": f"No se puede cancelar un pedido en estado '{pedido['estado']}'"}

        pedido["estado"] = CANCELADO
        pedido["fechaCancelacion"] = _ahora()

        productos = self.storage.get_products()
        por_id = {p["id"]: p for p in productos}
        for item in pedido["productos"]:
            producto = por_id.get(item["id"])
            if producto is not None:
                producto["stock"] += item["cantidad"]
                producto["estado"] = estado_stock(producto)
        self.storage.set_products(productos)
        self.storage.update_order(pedido)

        logger.info("[PEDIDO] %s cancelado, stock devuelto", numero_solicitud)
        self.sync.trigger_sync()
        return {"success": True, "pedido": pedido}

    def asignar_repartidor(self, pedido_id, repartidor_id):
        pedido = self.storage.find_order_by_id(pedido_id)
        if not pedido:
            return {"error": "Pedido no encontrado"}
        if pedido["estado"] != PENDIENTE:
            return {"error": "Solo se pueden asignar pedidos pendientes"}
        repartidor = self.storage.find_user_by_id(repartidor_id)
        if not repartidor or repartidor.get("rol") != "repartidor":
            return {"error": "Repartidor no encontrado"}

        pedido["repartidorAsignado"] = repartidor_id
        pedido["repartidorNombre"] = _nombre_completo(repartidor)
        pedido["estado"] = ASIGNADO
        pedido["fechaAsignacion"] = _ahora()
        self.storage.update_order(pedido)

        logger.info("[PEDIDO] %s asignado a repartidor %s", pedido["numeroSolicitud"], repartidor_id)
        self.sync.trigger_sync()
        return {"success": True, "pedido": pedido}

    def _avanzar(self, numero_solicitud, desde, hacia, campo_hora, repartidor_id=None):
        pedido = self.storage.find_order_by_number(numero_solicitud)
        if not pedido:
            return {"error": "Pedido no encontrado"}
        if repartidor_id is not None and pedido.get("repartidorAsignado") != repartidor_id:
            return {"error": "El pedido no está asignado a este repartidor"}
        if pedido["estado"] != desde:
            return {"error": f"El pedido debe estar en estado '{desde}'"}
        pedido["estado"] = hacia
        pedido[campo_hora] = _ahora()
        self.storage.update_order(pedido)
        logger.info("[PEDIDO] %s: %s -> %s", numero_solicitud, desde, hacia)
        self.sync.trigger_sync()
        return {"success": True, "pedido": pedido}

    def iniciar_ruta(self, numero_solicitud, repartidor_id=None):
        return self._avanzar(numero_solicitud, ASIGNADO, EN_RUTA, "horaInicioRuta", repartidor_id)

    def completar_entrega(self, numero_solicitud, repartidor_id=None):
        return self._avanzar(numero_solicitud, EN_RUTA, ENTREGADO, "horaEntrega", repartidor_id)

    def listar_pedidos(self, estado=None):
        if estado and estado not in ESTADOS:
            return []
        pedidos = self.storage.get_orders()
        if estado:
            pedidos = [p for p in pedidos if p["estado"] == estado]
        return pedidos

    def pedidos_cliente(self, cliente_id):
        return self.storage.get_orders_by_client(cliente_id)

    def pedidos_repartidor(self, repartidor_id):
        """Pedidos activos (Asignado / En Ruta) y entregados de un repartidor."""
        pedidos = self.storage.get_orders_by_delivery(repartidor_id)
        return {
            "activos": [p for p in pedidos if p["estado"] in (ASIGNADO, EN_RUTA)],
            "entregados": [p for p in pedidos if p["estado"] == ENTREGADO],
        }

    # --- CRUD de Productos ---
    def crear_producto(self, nombre, precio, stock, categoria="", descripcion="",
                       stock_critico=0, imagen=""):
        if categoria and not self.storage.find_category_by_name(categoria):
            return {"error": f"La categoría '{categoria}' no existe"}
        try:
            precio = _numero(precio)
            stock = _numero(stock, entero=True)
            stock_critico = _numero(stock_critico, entero=True)
        except (TypeError, ValueError):
            return {"error": "Precio, stock y stock crítico deben ser números"}
        try:
            producto = Producto(self.storage.next_id("products"), nombre, precio, stock,
                                categoria, descripcion, stock_critico, imagen)
        except ValueError as e:
            return {"error": str(e)}
        self.storage.create_product(producto.to_dict())
        self.sync.trigger_sync()
        return {"success": True, "producto_id": producto.id}

    def listar_productos(self, categoria=None):
        productos = self.storage.get_products()
        if categoria:
            productos = [p for p in productos if p.get("categoria") == categoria]
        return productos

    def actualizar_producto(self, producto_id, data):
        producto = self.storage.find_product_by_id(producto_id)
        if not producto:
            return {"error": "Producto no encontrado"}
        campos = ("nombre", "categoria", "descripcion", "precio", "stock", "stockCritico", "imagen")
        cambios = {k: v for k, v in data.items() if k in campos and v is not None}
        try:
            for campo, entero in (("precio", False), ("stock", True), ("stockCritico", True)):
                if campo in cambios:
                    cambios[campo] = _numero(cambios[campo], entero)
        except (TypeError, ValueError):
            return {"error": "Precio, stock y stock crítico deben ser números"}
        if cambios.get("categoria") and not self.storage.find_category_by_name(cambios["categoria"]):
            return {"error": f"La categoría '{cambios['categoria']}' no existe"}
        try:
            actualizado = Producto.from_dict({**producto, **cambios}).to_dict()
        except (TypeError, ValueError) as e:
            return {"error": str(e)}
        self.storage.update_product(actualizado)
        self.sync.trigger_sync()
        return {"success": True, "producto": actualizado}

    def eliminar_producto(self, producto_id):
        if not self.storage.delete_product(producto_id):
            return {"error": "Producto no encontrado"}
        self.sync.trigger_sync()
        return {"success": True}

    def agregar_stock(self, producto_id, cantidad):
        """Reposición de stock desde el panel de administración."""
        try:
            cantidad = _numero(cantidad, entero=True)
        except (TypeError, ValueError):
            return {"error": "La cantidad debe ser un número entero"}
        if cantidad <= 0:
            return {"error": "La cantidad debe ser mayor a 0"}
        producto = self.storage.find_product_by_id(producto_id)
        if not producto:
            return {"error": "Producto no encontrado"}
        producto["stock"] = producto.get("stock", 0) + cantidad
        producto["estado"] = estado_stock(producto)
        self.storage.update_product(producto)
        logger.info("[STOCK] +%s unidades a '%s'", cantidad, producto.get("nombre"))
        self.sync.trigger_sync()
        return {"success": True, "producto": producto}

    def productos_stock_critico(self):
        return [p for p in self.storage.get_products() if es_stock_critico(p)]

    # --- Categorías ---
    def crear_categoria(self, nombre, descripcion=""):
        if not isinstance(nombre, str) or not nombre.strip():
            return {"error": "El nombre de la categoría es requerido"}
        if self.storage.find_category_by_name(nombre):
            return {"error": f"Ya existe la categoría '{nombre}'"}
        categoria = Categoria(self.storage.next_id("categories"), nombre.strip(), descripcion)
        self.storage.create_category(categoria.to_dict())
        self.sync.trigger_sync()
        return {"success": True, "categoria_id": categoria.id}

    def listar_categorias(self):
        """Categorías con el conteo real de productos que las usan."""
        productos = self.storage.get_products()
        categorias = self.storage.get_categories()
        for categoria in categorias:
            categoria["productos"] = sum(1 for p in productos if p.get("categoria") == categoria["nombre"])
        return categorias

    def actualizar_categoria(self, categoria_id, nombre=None, descripcion=None):
        """Renombrar una categoría arrastra a los productos que la referencian."""
        categoria = self.storage.find_category_by_id(categoria_id)
        if not categoria:
            return {"error": "Categoría no encontrada"}
        if nombre is not None and (not isinstance(nombre, str) or not nombre.strip()):
            return {"error": "El nombre de la categoría es requerido"}
        anterior = categoria["nombre"]
        if nombre and nombre != anterior:
            if self.storage.find_category_by_name(nombre):
                return {"error": f"Ya existe la categoría '{nombre}'"}
            categoria["nombre"] = nombre
            productos = self.storage.get_products()
            for producto in productos:
                if producto.get("categoria") == anterior:
                    producto["categoria"] = nombre
            self.storage.set_products(productos)
        if descripcion is not None:
            categoria["descripcion"] = descripcion
        self.storage.update_category(categoria)
        self.sync.trigger_sync()
        return {"success": True, "categoria": categoria}

    def eliminar_categoria(self, categoria_id):
        categoria = self.storage.find_category_by_id(categoria_id)
        if not categoria:
            return {"error": "Categoría no encontrada"}
        en_uso = [p for p in self.storage.get_products() if p.get("categoria") == categoria["nombre"]]
        if en_uso:
            return {"error": f"La categoría tiene {len(en_uso)} producto(s) asociados"}
        self.storage.delete_category(categoria_id)
        self.sync.trigger_sync()
        return {"success": True}

    # --- Dashboard ---
    def estadisticas_dashboard(self, hoy=None):
        hoy = hoy or date.today()
        pedidos = self.storage.get_orders()
        usuarios = self.storage.get_users()
        pedidos_hoy = [p for p in pedidos if _es_del_dia(p.get("fecha"), hoy)]
        return {
            "pedidosHoy": len(pedidos_hoy),
            "totalUsuarios": sum(1 for u in usuarios if u.get("rol") == "cliente"),
            "repartidoresActivos": sum(1 for u in usuarios if u.get("rol") == "repartidor"),
            "ingresosHoy": sum(p["total"] for p in pedidos_hoy if p["estado"] == ENTREGADO),
        }

    # --- Reportes ---
    def reportes(self, periodo="semana", hoy=None):
        """Ventas por día, productos más vendidos, repartidores y totales generales.

        Solo los pedidos 'Entregado' cuentan como venta. `periodo` es 'dia',
        'semana' o 'mes' y fija cuántos días (terminando hoy) trae `ventas`.
        """
        if periodo not in PERIODOS:
            return {"error": f"periodo debe ser uno de {tuple(PERIODOS)}"}
        hoy = hoy or date.today()
        pedidos = self.storage.get_orders()
        entregados = [p for p in pedidos if p.get("estado") == ENTREGADO]

        ventas = []
        for atras in range(PERIODOS[periodo] - 1, -1, -1):
            dia = hoy - timedelta(days=atras)
            del_dia = [p for p in pedidos if _es_del_dia(p.get("fecha"), dia)]
            ventas.append({
                "fecha": dia.isoformat(),
                "ventas": sum(p.get("total", 0) for p in del_dia if p.get("estado") == ENTREGADO),
                "pedidos": len(del_dia),
            })

        por_producto = {}
        for pedido in entregados:
            for item in pedido.get("productos", []):
                fila = por_producto.setdefault(item["nombre"], {"nombre": item["nombre"], "cantidad": 0, "ingresos": 0})
                fila["cantidad"] += item["cantidad"]
                fila["ingresos"] += item["precio"] * item["cantidad"]
        top = sorted(por_producto.values(), key=lambda f: f["cantidad"], reverse=True)[:TOP_PRODUCTOS]

        repartidores = []
        for repartidor in self.storage.get_users_by_role("repartidor"):
            asignados = [p for p in pedidos if p.get("repartidorAsignado") == repartidor["id"]]
            entregas = sum(1 for p in asignados if p.get("estado") == ENTREGADO)
            en_ruta = sum(1 for p in asignados if p.get("estado") == EN_RUTA)
            repartidores.append({
                "id": repartidor["id"],
                "nombre": _nombre_completo(repartidor),
                "entregas": entregas,
                "enRuta": en_ruta,
                "total": entregas + en_ruta,
            })
        repartidores.sort(key=lambda r: r["entregas"], reverse=True)

        total_ventas = sum(p.get("total", 0) for p in entregados)
        total_pedidos = len(pedidos)
        generales = {
            "totalVentas": total_ventas,
            "totalPedidos": total_pedidos,
            # El ticket promedio se calcula sobre todos los pedidos, no solo los entregados
            "ticketPromedio": total_ventas / total_pedidos if total_pedidos else 0,
            "tasaEntrega": len(entregados) / total_pedidos * 100 if total_pedidos else 0,
            "clientesActivos": len({p.get("clienteId") for p in pedidos}),
            "productosVendidos": sum(i["cantidad"] for p in entregados for i in p.get("productos", [])),
        }
        return {
            "success": True,
            "periodo": periodo,
            "ventas": ventas,
            "topProductos": top,
            "repartidores": repartidores,
            "generales": generales,
        }
