from sqlalchemy import Column, String, Text, DateTime, Uuid
from datetime import datetime
import uuid
from models.base import Base, JSONType


class Company(Base):
    """
    Registry of corporate owners seen in transaction history.

    Design:
    - company_name is the display/storage form ("Abc Properties LLC")
    - comparison_key is the punctuation/case/whitespace-insensitive dedup key
    - counties only grows; companies are never merged or deleted
    """
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    company_name = Column(Text, nullable=False, unique=True)
    comparison_key = Column(Text, nullable=False, unique=True, index=True)

    contact_name = Column(Text, nullable=True)
    contact_email = Column(Text, nullable=True)
    phone_number = Column(String(20), nullable=True)

    counties = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
