class Producto:
    def __init__(self, id, nombre, precio, stock, categoria="", descripcion="",
                 stock_critico=0, imagen=""):
        if stock < 0:
            raise ValueError("El stock no puede ser negativo")
        if precio < 0:
            raise ValueError("El precio no puede ser negativo")
        if stock_critico < 0:
            raise ValueError("El stock crítico no puede ser negativo")
        self.id = id
        self.nombre = nombre
        self.precio = precio
        self.stock = stock
        self.categoria = categoria  # Nombre de la categoría, no su id
        self.descripcion = descripcion
        self.stock_critico = stock_critico
        self.imagen = imagen

    @property
    def estado(self):
        return "disponible" if self.stock > 0 else "agotado"

    def to_dict(self):
        return {
            "id": self.id,
            "nombre": self.nombre,
            "categoria": self.categoria,
            "descripcion": self.descripcion,
            "precio": self.precio,
            "stock": self.stock,
            "stockCritico": self.stock_critico,
            "imagen": self.imagen,
            "estado": self.estado,
        }

    @staticmethod
    def from_dict(data):
        return Producto(
            id=data.get("id"),
            nombre=data.get("nombre", ""),
            precio=data.get("precio", 0),
            stock=data.get("stock", 0),
            categoria=data.get("categoria", ""),
            descripcion=data.get("descripcion", ""),
            stock_critico=data.get("stockCritico", 0),
            imagen=data.get("imagen", ""),
        )


def estado_stock(producto):
    """'disponible' si queda stock, 'agotado' si no."""
    return "disponible" if producto.get("stock", 0) > 0 else "agotado"


def es_stock_critico(producto):
    return producto.get("stock", 0) <= producto.get("stockCritico", 0)
