import base64
import hmac
import json
import logging
import time

import jwt

logger = logging.getLogger(__name__)

TOKEN_KEY = "jwt_token"
TOKEN_EXPIRATION = 24 * 60 * 60 * 1000
ONE_HOUR = 60 * 60 * 1000

ALGORITHMS = ("HS256", "legacy")

# iat/exp van en milisegundos: la expiración se revisa aquí, no en PyJWT
_DECODE_OPTIONS = {"verify_exp": False, "verify_iat": False, "verify_nbf": False}


def now_ms():
    return int(time.time() * 1000)


def _b64url_encode(raw):
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(data):
    data += "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data.encode("ascii")).decode("utf-8")


def _to_base36(number):
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def legacy_checksum(data):
    """Checksum de 32 bits (hash * 31 + char) del formato de token heredado.

    No es criptográfico; solo sirve para leer/emitir tokens compatibles.
    """
    h = 0
    for char in data:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return _b64url_encode(_to_base36(abs(h)))


class JWTService:
    """Emite y verifica el token de sesión de UNA pestaña.

    El token vive en el SessionStorage de la pestaña, de modo que cada
    pestaña mantiene una sesión independiente aunque los datos sean compartidos.
    HS256 se firma con PyJWT; `legacy` reproduce el checksum heredado.
    """

    def __init__(self, session_storage, secret, algorithm="HS256",
                 ttl_ms=TOKEN_EXPIRATION, clock=None):
        if algorithm not in ALGORITHMS:
            raise ValueError(f"Algoritmo de token no soportado: {algorithm}")
        if not secret:
            raise ValueError("Se requiere un secreto para firmar tokens")
        self.session = session_storage
        self.secret = secret
        self.algorithm = algorithm
        self.ttl_ms = ttl_ms
        self.clock = clock or now_ms

    def generate_token(self, user):
        now = self.clock()
        payload = {
            "userId": user["id"],
            "email": user["email"],
            "rol": user["rol"],
            "iat": now,
            "exp": now + self.ttl_ms,
        }
        if self.algorithm == "legacy":
            return self._legacy_encode(payload)
        return jwt.encode(payload, self.secret, algorithm="HS256")

    def _legacy_encode(self, payload):
        header = {"alg": "HS256", "typ": "JWT"}
        encoded_header = _b64url_encode(json.dumps(header, separators=(",", ":")))
        encoded_payload = _b64url_encode(json.dumps(payload, separators=(",", ":")))
        signature = legacy_checksum(f"{encoded_header}.{encoded_payload}{self.secret}")
        return f"{encoded_header}.{encoded_payload}.{signature}"

    def _legacy_decode(self, token):
        parts = token.split(".")
        if len(parts) != 3:
            return None
        encoded_header, encoded_payload, signature = parts
        expected = legacy_checksum(f"{encoded_header}.{encoded_payload}{self.secret}")
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            logger.debug("[TOKEN] Firma inválida")
            return None
        try:
            return json.loads(_b64url_decode(encoded_payload))
        except (ValueError, TypeError, UnicodeDecodeError) as e:
            logger.debug("[TOKEN] Payload ilegible: %s", e)
            return None

    def verify_token(self, token):
        """Devuelve el payload o None si el token es inválido o expiró."""
        if not token or not isinstance(token, str):
            return None
        if self.algorithm == "legacy":
            payload = self._legacy_decode(token)
        else:
            try:
                payload = jwt.decode(token, self.secret, algorithms=["HS256"], options=_DECODE_OPTIONS)
            except jwt.InvalidTokenError as e:
                logger.debug("[TOKEN] Token rechazado: %s", e)
                return None
        try:
            expires = int(payload["exp"])
        except (TypeError, KeyError, ValueError):
            logger.debug("[TOKEN] Token sin expiración válida")
            return None
        if self.clock() > expires:
            logger.debug("[TOKEN] Token expirado")
            return None
        return payload

    # --- Almacenamiento (privado de la pestaña) ---
    def save_token(self, token):
        self.session.set_item(TOKEN_KEY, token)

    def get_token(self):
        return self.session.get_item(TOKEN_KEY)

    def remove_token(self):
        self.session.remove_item(TOKEN_KEY)

    def is_authenticated(self):
        return self.get_token_payload() is not None

    def get_token_payload(self):
        token = self.get_token()
        if not token:
            return None
        return self.verify_token(token)

    def get_current_user_id(self):
        payload = self.get_token_payload()
        return payload["userId"] if payload else None

    def get_current_user_role(self):
        payload = self.get_token_payload()
        return payload["rol"] if payload else None

    # --- Renovación ---
    def is_near_expiry(self, payload):
        return payload["exp"] - self.clock() < ONE_HOUR

    def will_expire_soon(self):
        payload = self.get_token_payload()
        if not payload:
            return False
        return self.is_near_expiry(payload)

    def refresh_token_if_needed(self, user):
        if self.will_expire_soon():
            self.save_token(self.generate_token(user))
            logger.info("[TOKEN] Token renovado automáticamente para %s", user.get("email"))
            return True
        return False
