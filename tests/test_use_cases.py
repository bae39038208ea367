from datetime import date

import pytest

from domain.pedido import ASIGNADO, CANCELADO, EN_RUTA, ENTREGADO, ENVIO, PENDIENTE

DATOS_ENVIO = {
    "direccion": "Av. Siempre Viva 123",
    "comuna": "Santiago",
    "telefono": "+56912345678",
    "metodoPago": "efectivo",
}


@pytest.fixture()
def cliente(seeded_tab, cliente_data):
    seeded_tab.register(cliente_data)
    return seeded_tab


@pytest.fixture()
def admin(seeded_tab, open_tab):
    tab = open_tab()
    tab.login("admin@maxigas.cl", "Admin123")
    return tab


@pytest.fixture()
def repartidor(seeded_tab, open_tab):
    tab = open_tab()
    tab.login("repartidor@maxigas.cl", "Repartidor123")
    return tab


@pytest.fixture()
def pedido(cliente):
    cliente.agregar_al_carrito(2)
    cliente.agregar_al_carrito(2)
    cliente.agregar_al_carrito(1)
    return cliente.checkout(DATOS_ENVIO)["pedido"]


def _stock(tab, producto_id):
    return tab.db.find_product_by_id(producto_id)["stock"]


# --- Checkout ---
def test_checkout_creates_pending_order(cliente, pedido):
    assert pedido["estado"] == PENDIENTE
    assert pedido["numeroSolicitud"] == f"PED-{pedido['id']}"
    assert pedido["clienteId"] == cliente.current_user["id"]
    assert pedido["clienteNombre"] == "Ana Rojas"
    assert pedido["subtotal"] == 2 * 16990 + 8990
    assert pedido["envio"] == ENVIO
    assert pedido["total"] == pedido["subtotal"] + ENVIO
    assert pedido["metodoPago"] == "efectivo"
    assert [(p["id"], p["cantidad"]) for p in pedido["productos"]] == [(2, 2), (1, 1)]


def test_checkout_decrements_stock_and_empties_cart(cliente, pedido):
    assert _stock(cliente, 2) == 98
    assert _stock(cliente, 1) == 49
    assert cliente.ver_carrito()["items"] == []
    assert cliente.mis_pedidos() == [pedido]


def test_order_prices_are_frozen(cliente, admin, pedido):
    admin.use_cases.actualizar_producto(2, {"precio": 1})
    stored = admin.db.find_order_by_number(pedido["numeroSolicitud"])
    assert stored["total"] == pedido["total"]
    assert stored["productos"][0]["precio"] == 16990


def test_checkout_with_empty_cart(cliente):
    assert cliente.checkout(DATOS_ENVIO) == {"error": "El carrito está vacío"}


def test_checkout_without_session(seeded_tab):
    assert "error" in seeded_tab.checkout(DATOS_ENVIO)


def test_checkout_rejects_stock_sold_elsewhere(cliente, admin):
    cliente.agregar_al_carrito(1)
    cliente.agregar_al_carrito(1)
    admin.use_cases.actualizar_producto(1, {"stock": 1})

    res = cliente.checkout(DATOS_ENVIO)
    assert "error" in res
    assert _stock(cliente, 1) == 1
    assert cliente.ver_carrito()["cantidad"] == 2
    assert cliente.db.get_orders() == []


def test_checkout_rejects_deleted_product(cliente, admin):
    cliente.agregar_al_carrito(3)
    admin.use_cases.eliminar_producto(3)
    assert "ya no existe" in cliente.checkout(DATOS_ENVIO)["error"]


def test_checkout_can_sell_out_a_product(cliente, admin):
    admin.use_cases.actualizar_producto(3, {"stock": 1})
    cliente.agregar_al_carrito(3)
    assert cliente.checkout(DATOS_ENVIO)["success"]
    producto = cliente.db.find_product_by_id(3)
    assert producto["stock"] == 0
    assert producto["estado"] == "agotado"


# --- Cancelación ---
def test_cancel_restores_stock(cliente, admin, pedido):
    res = admin.use_cases.cancelar_pedido(pedido["numeroSolicitud"])
    assert res["success"]
    assert res["pedido"]["estado"] == CANCELADO
    assert res["pedido"]["fechaCancelacion"]
    assert _stock(admin, 2) == 100
    assert _stock(admin, 1) == 50


def test_only_pending_orders_can_be_cancelled(admin, pedido):
    admin.use_cases.asignar_repartidor(pedido["id"], 9002)
    res = admin.use_cases.cancelar_pedido(pedido["numeroSolicitud"])
    assert "error" in res
    assert _stock(admin, 2) == 98


def test_cancel_twice(admin, pedido):
    admin.use_cases.cancelar_pedido(pedido["numeroSolicitud"])
    assert "error" in admin.use_cases.cancelar_pedido(pedido["numeroSolicitud"])
    assert _stock(admin, 2) == 100


def test_cancel_unknown_order(admin):
    assert admin.use_cases.cancelar_pedido("PED-0") == {"error": "Pedido no encontrado"}


# --- Ciclo de vida ---
def test_delivery_lifecycle(admin, repartidor, pedido):
    numero = pedido["numeroSolicitud"]
    res = admin.use_cases.asignar_repartidor(pedido["id"], 9002)
    assert res["pedido"]["estado"] == ASIGNADO
    assert res["pedido"]["repartidorNombre"] == "Juan Pérez"
    assert [p["id"] for p in repartidor.mis_entregas()["activos"]] == [pedido["id"]]

    assert "error" in repartidor.completar_entrega(numero)
    assert repartidor.iniciar_ruta(numero)["pedido"]["estado"] == EN_RUTA
    res = repartidor.completar_entrega(numero)
    assert res["pedido"]["estado"] == ENTREGADO
    assert res["pedido"]["horaEntrega"]

    entregas = repartidor.mis_entregas()
    assert entregas["activos"] == []
    assert [p["id"] for p in entregas["entregados"]] == [pedido["id"]]


def test_only_the_assigned_driver_advances_the_order(admin, pedido):
    admin.use_cases.asignar_repartidor(pedido["id"], 9002)
    res = admin.use_cases.iniciar_ruta(pedido["numeroSolicitud"], 12345)
    assert res == {"error": "El pedido no está asignado a este repartidor"}


@pytest.mark.parametrize("repartidor_id", [9001, 404])
def test_assign_requires_a_driver(admin, pedido, repartidor_id):
    res = admin.use_cases.asignar_repartidor(pedido["id"], repartidor_id)
    assert res == {"error": "Repartidor no encontrado"}


def test_list_orders_by_state(admin, pedido):
    assert admin.use_cases.listar_pedidos() == [pedido]
    assert admin.use_cases.listar_pedidos(PENDIENTE) == [pedido]
    assert admin.use_cases.listar_pedidos(ENTREGADO) == []
    assert admin.use_cases.listar_pedidos("Perdido") == []


# --- Productos ---
def test_create_product(admin):
    res = admin.use_cases.crear_producto("Regulador", 5990, 4, categoria="Accesorios", stock_critico=5)
    producto = admin.db.find_product_by_id(res["producto_id"])
    assert producto["estado"] == "disponible"
    assert producto in admin.use_cases.productos_stock_critico()
    assert admin.use_cases.listar_productos("Accesorios") == [producto]


def test_create_product_validations(admin):
    assert "error" in admin.use_cases.crear_producto("X", 100, 1, categoria="Inexistente")
    assert admin.use_cases.crear_producto("X", 100, -1) == {"error": "El stock no puede ser negativo"}


def test_update_product(admin):
    res = admin.use_cases.actualizar_producto(1, {"stock": 0, "precio": 9990, "id": 77})
    assert res["producto"]["id"] == 1
    assert res["producto"]["estado"] == "agotado"
    assert "error" in admin.use_cases.actualizar_producto(1, {"stock": -2})
    assert "error" in admin.use_cases.actualizar_producto(1, {"categoria": "Nada"})
    assert "error" in admin.use_cases.actualizar_producto(404, {"stock": 1})


def test_delete_product(admin):
    assert admin.use_cases.eliminar_producto(1) == {"success": True}
    assert "error" in admin.use_cases.eliminar_producto(1)


@pytest.mark.parametrize("cantidad", [0, -3, "muchas", None])
def test_add_stock_rejects_invalid_amounts(admin, cantidad):
    assert "error" in admin.use_cases.agregar_stock(1, cantidad)
    assert _stock(admin, 1) == 50


def test_add_stock(admin):
    admin.use_cases.actualizar_producto(1, {"stock": 0})
    res = admin.use_cases.agregar_stock(1, "5")
    assert res["producto"]["stock"] == 5
    assert res["producto"]["estado"] == "disponible"


def test_update_product_accepts_numeric_text(admin):
    res = admin.use_cases.actualizar_producto(1, {"stock": "5", "precio": "9990", "stockCritico": "3"})
    producto = admin.db.find_product_by_id(1)
    assert res["producto"] == producto
    assert (producto["stock"], producto["precio"], producto["stockCritico"]) == (5, 9990, 3)
    assert producto["estado"] == "disponible"


@pytest.mark.parametrize("cambios", [
    {"stock": "abc"},
    {"stock": 2.5},
    {"stock": True},
    {"precio": "caro"},
    {"precio": -1},
    {"stockCritico": "x"},
    {"stockCritico": -1},
    {"stock": [1]},
])
def test_update_product_rejects_bad_numbers(admin, cambios):
    assert "error" in admin.use_cases.actualizar_producto(1, cambios)
    producto = admin.db.find_product_by_id(1)
    assert (producto["stock"], producto["precio"], producto["stockCritico"]) == (50, 8990, 10)


def test_create_product_accepts_numeric_text(admin):
    res = admin.use_cases.crear_producto("Regulador", "5990", "4", categoria="Accesorios", stock_critico="2")
    producto = admin.db.find_product_by_id(res["producto_id"])
    assert (producto["precio"], producto["stock"], producto["stockCritico"]) == (5990, 4, 2)


@pytest.mark.parametrize("precio, stock, stock_critico", [
    ("caro", 1, 0),
    (100, "muchos", 0),
    (100, 1, "abc"),
    (None, 1, 0),
    (-5, 1, 0),
])
def test_create_product_rejects_bad_numbers(admin, precio, stock, stock_critico):
    res = admin.use_cases.crear_producto("X", precio, stock, stock_critico=stock_critico)
    assert "error" in res
    assert len(admin.use_cases.listar_productos()) == 3


# --- Categorías ---
def test_category_counts_are_live(admin):
    conteo = {c["nombre"]: c["productos"] for c in admin.use_cases.listar_categorias()}
    assert conteo == {"Gas Licuado": 3, "Accesorios": 0}


def test_create_category(admin):
    res = admin.use_cases.crear_categoria("Repuestos")
    assert admin.db.find_category_by_id(res["categoria_id"])["nombre"] == "Repuestos"
    assert "error" in admin.use_cases.crear_categoria("Repuestos")
    assert "error" in admin.use_cases.crear_categoria("  ")


def test_rename_category_moves_products(admin):
    res = admin.use_cases.actualizar_categoria(1, nombre="Gas", descripcion="Cilindros")
    assert res["categoria"]["descripcion"] == "Cilindros"
    assert len(admin.use_cases.listar_productos("Gas")) == 3
    assert admin.use_cases.listar_productos("Gas Licuado") == []
    assert "error" in admin.use_cases.actualizar_categoria(1, nombre="Accesorios")


def test_delete_category_in_use(admin):
    assert "error" in admin.use_cases.eliminar_categoria(1)
    assert admin.use_cases.eliminar_categoria(2) == {"success": True}
    assert "error" in admin.use_cases.eliminar_categoria(2)


# --- Dashboard ---
def test_dashboard(admin, repartidor, pedido):
    admin.use_cases.asignar_repartidor(pedido["id"], 9002)
    repartidor.iniciar_ruta(pedido["numeroSolicitud"])
    repartidor.completar_entrega(pedido["numeroSolicitud"])

    stats = admin.use_cases.estadisticas_dashboard()
    assert stats == {
        "pedidosHoy": 1,
        "totalUsuarios": 1,
        "repartidoresActivos": 1,
        "ingresosHoy": pedido["total"],
    }
    otro_dia = admin.use_cases.estadisticas_dashboard(hoy=date(2000, 1, 1))
    assert otro_dia["pedidosHoy"] == 0
    assert otro_dia["ingresosHoy"] == 0


# --- Reportes ---
@pytest.fixture()
def entregado(admin, repartidor, pedido):
    admin.use_cases.asignar_repartidor(pedido["id"], 9002)
    repartidor.iniciar_ruta(pedido["numeroSolicitud"])
    repartidor.completar_entrega(pedido["numeroSolicitud"])
    return pedido


def test_reports(admin, cliente, entregado):
    cliente.agregar_al_carrito(3)
    pendiente = cliente.checkout(DATOS_ENVIO)["pedido"]

    res = admin.use_cases.reportes("semana")
    assert res["success"] is True
    ventas = res["ventas"]
    assert len(ventas) == 7
    assert ventas[-1] == {"fecha": date.today().isoformat(), "ventas": entregado["total"], "pedidos": 2}
    assert all(dia["ventas"] == 0 and dia["pedidos"] == 0 for dia in ventas[:-1])

    assert res["topProductos"] == [
        {"nombre": "Cilindro 11 kg", "cantidad": 2, "ingresos": 2 * 16990},
        {"nombre": "Cilindro 5 kg", "cantidad": 1, "ingresos": 8990},
    ]
    assert res["repartidores"] == [
        {"id": 9002, "nombre": "Juan Pérez", "entregas": 1, "enRuta": 0, "total": 1},
    ]
    assert res["generales"] == {
        "totalVentas": entregado["total"],
        "totalPedidos": 2,
        "ticketPromedio": entregado["total"] / 2,
        "tasaEntrega": 50.0,
        "clientesActivos": 1,
        "productosVendidos": 3,
    }
    assert pendiente["estado"] == PENDIENTE


def test_reports_count_routes_in_progress(admin, repartidor, pedido):
    admin.use_cases.asignar_repartidor(pedido["id"], 9002)
    repartidor.iniciar_ruta(pedido["numeroSolicitud"])
    res = admin.use_cases.reportes("dia")
    assert res["repartidores"][0]["enRuta"] == 1
    assert res["repartidores"][0]["entregas"] == 0
    assert res["topProductos"] == []
    assert res["generales"]["totalVentas"] == 0


@pytest.mark.parametrize("periodo, dias", [("dia", 1), ("semana", 7), ("mes", 30)])
def test_report_periods(admin, periodo, dias):
    ventas = admin.use_cases.reportes(periodo, hoy=date(2025, 3, 31))["ventas"]
    assert len(ventas) == dias
    assert ventas[-1]["fecha"] == "2025-03-31"
    assert ventas[0]["fecha"] == {1: "2025-03-31", 7: "2025-03-25", 30: "2025-03-02"}[dias]


def test_report_without_orders(admin):
    generales = admin.use_cases.reportes()["generales"]
    assert generales["ticketPromedio"] == 0
    assert generales["tasaEntrega"] == 0
    assert generales["clientesActivos"] == 0


def test_report_rejects_unknown_period(admin):
    assert "error" in admin.use_cases.reportes("anio")


# --- Administración de usuarios ---
NUEVO = {
    "nombre": "Pedro",
    "apellidos": "Soto",
    "rut": "9.999.999-3",
    "email": "pedro@maxigas.cl",
    "password": "Pedro123",
    "rol": "repartidor",
}


def test_admin_creates_driver(admin):
    res = admin.user_manager.crear_usuario(NUEVO)
    usuario = admin.db.find_user_by_id(res["user_id"])
    assert usuario["disponible"] is True
    assert usuario["foto"]
    assert len(admin.user_manager.listar_usuarios("repartidor")) == 2


def test_admin_create_user_validations(admin):
    assert "error" in admin.user_manager.crear_usuario({**NUEVO, "email": "admin@maxigas.cl"})
    assert "error" in admin.user_manager.crear_usuario({**NUEVO, "rut": "22.222.222-2"})
    assert "error" in admin.user_manager.crear_usuario({**NUEVO, "rol": "jefe"})


def test_admin_update_user(admin):
    assert "error" in admin.user_manager.actualizar_usuario(9002, {"email": "admin@maxigas.cl"})
    assert "error" in admin.user_manager.actualizar_usuario(9002, {"rol": "jefe"})
    assert "error" in admin.user_manager.actualizar_usuario(404, {"nombre": "X"})
    res = admin.user_manager.actualizar_usuario(9002, {"nombre": "Juanito", "id": 1})
    assert res["usuario"]["id"] == 9002
    assert admin.db.find_user_by_id(9002)["nombre"] == "Juanito"


def test_admins_cannot_be_deleted(admin):
    assert "error" in admin.user_manager.eliminar_usuario(9001)
    assert admin.user_manager.eliminar_usuario(9002) == {"success": True}
    assert "error" in admin.user_manager.eliminar_usuario(9002)


def test_driver_availability(admin):
    assert admin.user_manager.cambiar_disponibilidad(9002, False) == {"success": True, "disponible": False}
    assert "error" in admin.user_manager.cambiar_disponibilidad(9001, True)
