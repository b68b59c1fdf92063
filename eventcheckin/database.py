"""
Configuration de la connexion à la base de données.
Même base pour l'API d'inscription et les postes de scan.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from eventcheckin.config import settings

engine = create_engine(settings.DATABASE_URL)

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
    """Crée les tables manquantes (commande CLI `init-db`)."""
    import eventcheckin.models  # noqa: F401 — enregistre les modèles dans Base.metadata

    Base.metadata.create_all(bind=engine)
