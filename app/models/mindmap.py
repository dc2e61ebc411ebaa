from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, Float
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base, utcnow


class MindMap(Base):
    __tablename__ = "mindmaps"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    theme = Column(String(50), nullable=False, default="default")
    is_public = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False, index=True)

    # Canvas viewport
    canvas_width = Column(Integer, nullable=False, default=2000)
    canvas_height = Column(Integer, nullable=False, default=1500)
    zoom_level = Column(Float, nullable=False, default=1.0)
    center_x = Column(Float, nullable=False, default=1000)
    center_y = Column(Float, nullable=False, default=750)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    last_accessed = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    owner = relationship("User", back_populates="mindmaps")
    nodes = relationship("Node", back_populates="mindmap", passive_deletes=True)
    collaborators = relationship("Collaborator", back_populates="mindmap", passive_deletes=True)
