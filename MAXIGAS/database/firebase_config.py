import logging
import os

import firebase_admin
from dotenv import load_dotenv
from firebase_admin import credentials

load_dotenv()

logger = logging.getLogger(__name__)


def init_firebase(cred_path=None, db_url=None):
    """Inicializa la app de Firebase una sola vez por proceso."""
    cred_path = cred_path or os.getenv("FIREBASE_CREDENTIALS_PATH")
    db_url = db_url or os.getenv("FIREBASE_DB_URL")

    if not cred_path or not db_url:
        raise ValueError("FIREBASE_CREDENTIALS_PATH y FIREBASE_DB_URL son requeridos")

    if not firebase_admin._apps:
        cred = credentials.Certificate(cred_path)
        firebase_admin.initialize_app(cred, {"databaseURL": db_url})
        logger.info("[FIREBASE] Firebase inicializado correctamente")
