import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name, default="false"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-maxigas-2025")
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-jwt-secret-maxigas-cambiar-en-produccion")
    # HS256 = HMAC-SHA256; legacy = checksum del formato de token heredado
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))
    TOKEN_RENEWAL_SECONDS = int(os.getenv("TOKEN_RENEWAL_SECONDS", "300"))
    # Pestañas sin peticiones por más de este tiempo se cierran
    TAB_IDLE_SECONDS = int(os.getenv("TAB_IDLE_SECONDS", "1800"))

    # memory | firebase
    STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory")
    FIREBASE_CREDENTIALS_PATH = os.getenv("FIREBASE_CREDENTIALS_PATH")
    FIREBASE_DB_URL = os.getenv("FIREBASE_DB_URL")
    FIREBASE_ROOT = os.getenv("FIREBASE_ROOT", "maxigas")

    SEED_DATA = _flag("SEED_DATA", "true")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
