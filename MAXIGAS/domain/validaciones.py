"""Validaciones de formularios (RUT chileno, edad, contraseña, contacto)."""
import re
from datetime import date

_TEXTO = re.compile(r"^[a-zA-ZáéíóúÁÉÍÓÚñÑ\s]+$")
_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TELEFONO = re.compile(r"^(\+?56)?\s?9\s?[0-9]{4}\s?[0-9]{4}$")


def _texto(valor):
    return valor if isinstance(valor, str) else ""


def validar_texto(texto):
    """Solo letras y espacios, al menos 2 caracteres."""
    texto = _texto(texto)
    return bool(_TEXTO.match(texto)) and len(texto.strip()) >= 2


def _limpiar_rut(rut):
    return _texto(rut).replace(".", "").replace("-", "").upper()


def digito_verificador(cuerpo):
    """Dígito verificador módulo 11 ('0'-'9' o 'K')."""
    suma = 0
    multiplicador = 2
    for caracter in reversed(cuerpo):
        suma += int(caracter) * multiplicador
        multiplicador = 2 if multiplicador == 7 else multiplicador + 1
    esperado = 11 - (suma % 11)
    if esperado == 11:
        return "0"
    if esperado == 10:
        return "K"
    return str(esperado)


def validar_rut(rut):
    valor = _limpiar_rut(rut)
    if len(valor) < 8:
        return False
    cuerpo, dv = valor[:-1], valor[-1]
    if not cuerpo.isdigit():
        return False
    return dv == digito_verificador(cuerpo)


def formatear_rut(rut):
    """'123456785' -> '12.345.678-5'."""
    valor = _limpiar_rut(rut)
    if not valor:
        return ""
    cuerpo, dv = valor[:-1], valor[-1]
    if not cuerpo:
        return valor
    grupos = []
    while len(cuerpo) > 3:
        grupos.insert(0, cuerpo[-3:])
        cuerpo = cuerpo[:-3]
    grupos.insert(0, cuerpo)
    return ".".join(grupos) + "-" + dv


def validar_edad(fecha_nacimiento, hoy=None):
    """True si la persona tiene 18 años o más. Fecha en formato ISO (YYYY-MM-DD)."""
    try:
        nacimiento = date.fromisoformat(fecha_nacimiento[:10])
    except (TypeError, ValueError):
        return False
    hoy = hoy or date.today()
    edad = hoy.year - nacimiento.year
    if (hoy.month, hoy.day) < (nacimiento.month, nacimiento.day):
        edad -= 1
    return edad >= 18


def validar_contrasena(contrasena):
    """Mínimo 8 caracteres, una mayúscula, una minúscula y un número."""
    if not isinstance(contrasena, str) or len(contrasena) < 8:
        return False
    return (
        any(c.isupper() for c in contrasena)
        and any(c.islower() for c in contrasena)
        and any(c.isdigit() for c in contrasena)
    )


def validar_email(email):
    return bool(_EMAIL.match(_texto(email)))


def validar_telefono(telefono):
    return bool(_TELEFONO.match(_texto(telefono)))


def validar_requerido(valor):
    return bool(valor and str(valor).strip())


def validar_numero_positivo(numero):
    try:
        return float(numero) > 0
    except (TypeError, ValueError):
        return False


def validar_registro(datos):
    """Devuelve el primer error encontrado en los datos de registro, o None."""
    for campo in ("nombre", "apellidos", "rut", "email", "password", "fechaNacimiento"):
        if not validar_requerido(datos.get(campo)):
            return f"El campo {campo} es requerido"
    if not validar_texto(datos["nombre"]) or not validar_texto(datos["apellidos"]):
        return "Nombre y apellidos solo pueden contener letras"
    if not validar_rut(datos["rut"]):
        return "RUT inválido"
    if not validar_email(datos["email"]):
        return "Email inválido"
    if not validar_contrasena(datos["password"]):
        return "La contraseña debe tener 8 caracteres, mayúscula, minúscula y número"
    if not validar_edad(datos["fechaNacimiento"]):
        return "Debes ser mayor de 18 años"
    if datos.get("telefono") and not validar_telefono(datos["telefono"]):
        return "Teléfono inválido"
    return None
