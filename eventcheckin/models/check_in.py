"""
Modèle SQLAlchemy pour l'historique des check-ins (append-only).

Chaque scan validé insère une ligne : deux postes qui enregistrent un check-in
pour la même inscription n'écrasent jamais l'historique l'un de l'autre.
"""

import uuid
from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID

from eventcheckin.database import Base


class CheckIn(Base):
    __tablename__ = "check_ins"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    registration_id = Column(
        UUID(as_uuid=True), ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True
    )

    checked_in_at = Column(DateTime(timezone=True), nullable=False)
    timestamp = Column(String(32), nullable=False)  # ISO-8601 UTC, ex. 2026-10-18T08:30:00.000Z
    date = Column(String(32), nullable=False)       # Date locale formatée
    time = Column(String(32), nullable=False)       # Heure locale formatée
