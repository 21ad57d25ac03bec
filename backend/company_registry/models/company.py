from sqlalchemy import Column, String, DateTime, Uuid
import uuid
from ..core.db import Base

TITLE_MAX_LENGTH = 100


class Company(Base):
    __tablename__ = "companies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Unique constraint backs up the coordinator's duplicate pre-check
    title = Column(String(TITLE_MAX_LENGTH), unique=True, index=True, nullable=False)
    description = Column(String, nullable=False, default="")
    url = Column(String, nullable=False, default="")
    created = Column(DateTime(timezone=True), nullable=False)
