"""
Configuration de la connexion à la base de données PostgreSQL.
Le moteur (et son pool de connexions) est créé une seule fois ; chaque requête
reçoit sa propre session via la dépendance get_db.
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from app.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dépendance FastAPI — fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Crée les tables manquantes (équivalent du CREATE TABLE IF NOT EXISTS)."""
    import app.models  # noqa: F401 — enregistre les tables dans Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info("Schéma de base de données initialisé.")


def dispose_engine() -> None:
    """Ferme toutes les connexions du pool (appelé à l'arrêt de l'API)."""
    engine.dispose()
    logger.info("Pool de connexions fermé.")
