ROLES = ("cliente", "repartidor", "admin")
FOTO_POR_DEFECTO = "https://via.placeholder.com/150"


class Usuario:
    """Modelo de usuario. El rol por defecto de un registro nuevo es 'cliente'."""

    OPCIONALES = ("telefono", "direccion", "comuna", "foto", "disponible")

    def __init__(self, id, nombre, apellidos, rut, email, password, rol="cliente",
                 fecha_nacimiento="", fecha_registro="", telefono=None, direccion=None,
                 comuna=None, foto=None, disponible=None):
        if rol not in ROLES:
            raise ValueError(f"rol debe ser uno de {ROLES}")
        self.id = id
        self.nombre = nombre
        self.apellidos = apellidos
        self.rut = rut
        self.email = email
        self.password = password
        self.rol = rol
        self.fecha_nacimiento = fecha_nacimiento
        self.fecha_registro = fecha_registro
        self.telefono = telefono
        self.direccion = direccion
        self.comuna = comuna
        self.foto = foto
        self.disponible = disponible

    @property
    def nombre_completo(self):
        return f"{self.nombre} {self.apellidos}".strip()

    def to_dict(self):
        data = {
            "id": self.id,
            "nombre": self.nombre,
            "apellidos": self.apellidos,
            "rut": self.rut,
            "fechaNacimiento": self.fecha_nacimiento,
            "email": self.email,
            "password": self.password,
            "fechaRegistro": self.fecha_registro,
            "rol": self.rol,
        }
        for campo in self.OPCIONALES:
            valor = getattr(self, campo)
            if valor is not None:
                data[campo] = valor
        return data

    @staticmethod
    def from_dict(data):
        return Usuario(
            id=data.get("id"),
            nombre=data.get("nombre", ""),
            apellidos=data.get("apellidos", ""),
            rut=data.get("rut", ""),
            email=data.get("email", ""),
            password=data.get("password", ""),
            rol=data.get("rol") or "cliente",
            fecha_nacimiento=data.get("fechaNacimiento", ""),
            fecha_registro=data.get("fechaRegistro", ""),
            telefono=data.get("telefono"),
            direccion=data.get("direccion"),
            comuna=data.get("comuna"),
            foto=data.get("foto"),
            disponible=data.get("disponible"),
        )

    def __repr__(self):
        return f"{self.email} ({self.rol})"
