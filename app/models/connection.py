from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.core.database import Base, utcnow


class Connection(Base):
    """Non-hierarchical link between two nodes of the same map"""
    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)
    from_node_id = Column(Integer, ForeignKey("nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    to_node_id = Column(Integer, ForeignKey("nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    label = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
