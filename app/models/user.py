from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base, utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    subscription_type = Column(String(20), nullable=False, default="free")  # free, premium, enterprise
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    mindmaps = relationship("MindMap", back_populates="owner", passive_deletes=True)
    collaborations = relationship(
        "Collaborator", back_populates="user", foreign_keys="Collaborator.user_id", passive_deletes=True
    )
