class Categoria:
    def __init__(self, id, nombre, descripcion="", productos=0):
        self.id = id
        self.nombre = nombre
        self.descripcion = descripcion
        self.productos = productos  # Conteo para mostrar, no se mantiene solo

    def to_dict(self):
        return {
            "id": self.id,
            "nombre": self.nombre,
            "descripcion": self.descripcion,
            "productos": self.productos,
        }
