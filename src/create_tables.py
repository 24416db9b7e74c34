# create_tables.py
import logging

from database import engine, Base
# Importa todos los modelos para que se registren con Base
from modules.identity.models.user import User
from modules.identity.models.worker import Worker
from modules.signatures.models.signature import Signature
from modules.signature_requests.models.signature_request import SignatureRequest, RequestMember

logger = logging.getLogger(__name__)


def crear_tablas():
    """Crea todas las tablas en la base de datos"""
    logger.info("Tablas a crear: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    crear_tablas()
