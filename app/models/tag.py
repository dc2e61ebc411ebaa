from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base, utcnow


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    color = Column(String(20), nullable=False, default="#6c757d")
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationship to nodes through association table
    nodes = relationship("Node", secondary="node_tags", back_populates="tags")
