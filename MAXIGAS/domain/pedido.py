ENVIO = 2990

PENDIENTE = "Pendiente"
ASIGNADO = "Asignado"
EN_RUTA = "En Ruta"
ENTREGADO = "Entregado"
CANCELADO = "Cancelado"
ESTADOS = (PENDIENTE, ASIGNADO, EN_RUTA, ENTREGADO, CANCELADO)


class ItemCarrito:
    """Foto del producto al momento de agregarlo al carrito."""

    def __init__(self, id, nombre, precio, imagen="", cantidad=1):
        self.id = id
        self.nombre = nombre
        self.precio = precio
        self.imagen = imagen
        self.cantidad = cantidad

    @property
    def subtotal(self):
        return self.precio * self.cantidad

    def to_dict(self):
        return {
            "id": self.id,
            "nombre": self.nombre,
            "precio": self.precio,
            "imagen": self.imagen,
            "cantidad": self.cantidad,
        }

    @staticmethod
    def from_producto(producto, cantidad=1):
        return ItemCarrito(
            id=producto["id"],
            nombre=producto.get("nombre", ""),
            precio=producto.get("precio", 0),
            imagen=producto.get("imagen", ""),
            cantidad=cantidad,
        )

    @staticmethod
    def from_dict(data):
        return ItemCarrito(
            id=data["id"],
            nombre=data.get("nombre", ""),
            precio=data.get("precio", 0),
            imagen=data.get("imagen", ""),
            cantidad=data.get("cantidad", 1),
        )


class Pedido:
    """Pedido con los precios congelados al momento del checkout.

    subtotal y total se calculan una sola vez aquí y no se recalculan después,
    aunque cambie el precio del producto.
    """

    def __init__(self, id, cliente_id, cliente_nombre, items, direccion, comuna,
                 telefono, metodo_pago, fecha, envio=ENVIO):
        self.id = id
        self.numero_solicitud = f"PED-{id}"
        self.cliente_id = cliente_id
        self.cliente_nombre = cliente_nombre
        self.items = [ItemCarrito.from_dict(i) if isinstance(i, dict) else i for i in items]
        self.direccion = direccion
        self.comuna = comuna
        self.telefono = telefono
        self.metodo_pago = metodo_pago
        self.fecha = fecha
        self.subtotal = sum(item.subtotal for item in self.items)
        self.envio = envio
        self.total = self.subtotal + envio
        self.estado = PENDIENTE

    def to_dict(self):
        return {
            "id": self.id,
            "numeroSolicitud": self.numero_solicitud,
            "clienteId": self.cliente_id,
            "clienteNombre": self.cliente_nombre,
            "productos": [item.to_dict() for item in self.items],
            "direccion": self.direccion,
            "comuna": self.comuna,
            "telefono": self.telefono,
            "metodoPago": self.metodo_pago,
            "subtotal": self.subtotal,
            "envio": self.envio,
            "total": self.total,
            "estado": self.estado,
            "fecha": self.fecha,
        }
