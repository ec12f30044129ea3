# opsdesk/models/persona.py
import uuid
from sqlalchemy import Column, String, Text, Uuid

from opsdesk.core.database import Base

class Persona(Base):
    """SQLAlchemy model for the 'personas' table. Owned by the data-entry layer, the engine reads id and name."""
    __tablename__ = "personas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Persona(id={self.id}, name='{self.name}')>"
