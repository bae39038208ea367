import pytest

from database.init_data import initialize_data
from database.storage import MemoryBackend
from presentation.presentation import ViewModel

SECRET = "clave-de-pruebas-maxigas-con-32-bytes"
START = 1_700_000_000_000


class Clock:
    """Reloj en milisegundos controlado por el test."""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture()
def backend():
    backend = MemoryBackend()
    yield backend
    backend.close()


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def open_tab(backend, clock):
    """Abre pestañas que comparten el mismo backend."""
    tabs = []

    def _open(**kwargs):
        kwargs.setdefault("clock", clock)
        tab = ViewModel(backend, SECRET, **kwargs)
        tabs.append(tab)
        return tab

    yield _open
    for tab in tabs:
        tab.close()


@pytest.fixture()
def tab(open_tab):
    return open_tab()


@pytest.fixture()
def seeded_tab(tab):
    initialize_data(tab.db)
    return tab


@pytest.fixture()
def cliente_data():
    return {
        "nombre": "Ana",
        "apellidos": "Rojas",
        "rut": "12.345.678-5",
        "fechaNacimiento": "1990-05-10",
        "email": "ana@correo.cl",
        "password": "Abcdef12",
        "telefono": "+56912345678",
        "direccion": "Av. Siempre Viva 123",
        "comuna": "Santiago",
    }


@pytest.fixture()
def producto():
    return {
        "id": 1,
        "nombre": "Cilindro 11 kg",
        "categoria": "Gas Licuado",
        "descripcion": "",
        "precio": 16990,
        "stock": 3,
        "stockCritico": 1,
        "imagen": "",
        "estado": "disponible",
    }
