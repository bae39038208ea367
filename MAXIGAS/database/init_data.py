import logging
from datetime import datetime, timezone

from domain.categoria import Categoria
from domain.producto import Producto
from domain.usuario import FOTO_POR_DEFECTO

logger = logging.getLogger(__name__)


def _usuarios_por_defecto():
    ahora = datetime.now(timezone.utc).isoformat()
    return [
        {
            "id": 9001,
            "nombre": "Administrador",
            "apellidos": "Sistema",
            "rut": "11.111.111-1",
            "fechaNacimiento": "1990-01-01",
            "email": "admin@maxigas.cl",
            "password": "Admin123",
            "telefono": "+56912345678",
            "direccion": "",
            "comuna": "",
            "fechaRegistro": ahora,
            "rol": "admin",
            "foto": FOTO_POR_DEFECTO,
        },
        {
            "id": 9002,
            "nombre": "Juan",
            "apellidos": "Pérez",
            "rut": "22.222.222-2",
            "fechaNacimiento": "1995-01-01",
            "email": "repartidor@maxigas.cl",
            "password": "Repartidor123",
            "telefono": "+56987654321",
            "direccion": "",
            "comuna": "",
            "fechaRegistro": ahora,
            "rol": "repartidor",
            "foto": FOTO_POR_DEFECTO,
            "disponible": True,
        },
    ]


CATEGORIAS = [
    Categoria(1, "Gas Licuado", "Cilindros de gas para uso doméstico", 3),
    Categoria(2, "Accesorios", "Accesorios y repuestos para gas", 0),
]

PRODUCTOS = [
    Producto(1, "Cilindro 5 kg", 8990, 50, "Gas Licuado", "Ideal para hogares pequeños", 10,
             "https://via.placeholder.com/300x300/FF6B6B/FFFFFF?text=5kg"),
    Producto(2, "Cilindro 11 kg", 16990, 100, "Gas Licuado", "El más popular para uso doméstico", 20,
             "https://via.placeholder.com/300x300/4ECDC4/FFFFFF?text=11kg"),
    Producto(3, "Cilindro 15 kg", 22990, 75, "Gas Licuado", "Mayor rendimiento y duración", 15,
             "https://via.placeholder.com/300x300/45B7D1/FFFFFF?text=15kg"),
]


def initialize_data(storage_service):
    """Carga usuarios, categorías y productos por defecto en colecciones vacías."""
    if not storage_service.get_users():
        storage_service.set_users(_usuarios_por_defecto())
        logger.info("[INIT] Usuarios por defecto creados")
    if not storage_service.get_categories():
        storage_service.set_categories([c.to_dict() for c in CATEGORIAS])
        logger.info("[INIT] Categorías por defecto creadas")
    if not storage_service.get_products():
        storage_service.set_products([p.to_dict() for p in PRODUCTOS])
        logger.info("[INIT] Productos por defecto creados")
