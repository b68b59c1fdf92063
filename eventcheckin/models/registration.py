"""
Modèle SQLAlchemy pour les inscriptions (une ligne par participant).

L'email sert de clé d'unicité, vérifiée à l'écriture par le service
d'inscription et non par une contrainte UNIQUE (voir registration_service).
"""

import uuid
from sqlalchemy import JSON, Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from eventcheckin.database import Base


class Registration(Base):
    """Inscription d'un participant, identifiée par l'UUID encodé dans son QR code."""
    __tablename__ = "registrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    status = Column(String(20), default="active")

    total_check_ins = Column(Integer, nullable=False, default=0)
    last_check_in = Column(JSON, nullable=True)  # Copie du dernier CheckIn {timestamp, date, time}

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
