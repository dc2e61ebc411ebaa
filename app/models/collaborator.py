from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base, utcnow


class Collaborator(Base):
    __tablename__ = "collaborators"
    __table_args__ = (UniqueConstraint("map_id", "user_id", name="uq_collaborators_map_user"),)

    id = Column(Integer, primary_key=True, index=True)
    map_id = Column(Integer, ForeignKey("mindmaps.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    permission = Column(String(20), nullable=False, default="view")  # view, edit, admin
    status = Column(String(20), nullable=False, default="pending")  # pending, accepted
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    mindmap = relationship("MindMap", back_populates="collaborators")
    user = relationship("User", back_populates="collaborations", foreign_keys=[user_id])
