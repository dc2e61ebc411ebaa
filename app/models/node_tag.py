from sqlalchemy import Column, Integer, ForeignKey, Table
from app.core.database import Base

# Association table for many-to-many relationship between nodes and tags
node_tags = Table(
    'node_tags',
    Base.metadata,
    Column('node_id', Integer, ForeignKey('nodes.id', ondelete='CASCADE'), primary_key=True),
    Column('tag_id', Integer, ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True)
)
