from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, Float
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base, utcnow


class Node(Base):
    __tablename__ = "nodes"

    id = Column(Integer, primary_key=True, index=True)
    map_id = Column(Integer, ForeignKey("mindmaps.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("nodes.id", ondelete="CASCADE"), nullable=True, index=True)
    node_text = Column(Text, nullable=False)
    node_type = Column(String(20), nullable=False, default="main")  # central, main, sub, ...

    # Style
    color = Column(String(20), nullable=True)
    background_color = Column(String(20), nullable=True)
    text_color = Column(String(20), nullable=True)
    font_size = Column(Integer, nullable=True)
    font_weight = Column(String(20), nullable=False, default="normal")
    icon = Column(String(100), nullable=True)
    image_url = Column(String(500), nullable=True)

    # Geometry
    position_x = Column(Float, nullable=False, default=0)
    position_y = Column(Float, nullable=False, default=0)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)

    # Task metadata
    priority = Column(String(20), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="pending")
    due_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    order_index = Column(Integer, nullable=False, default=0)
    is_collapsed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    mindmap = relationship("MindMap", back_populates="nodes")
    tags = relationship("Tag", secondary="node_tags", back_populates="nodes")
