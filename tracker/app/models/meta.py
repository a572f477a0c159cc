"""
Key/value meta table (admin secret, start time, start place and coordinates).
"""

from sqlalchemy import Column, String, Text
from tracker.app.db.session import Base


class Meta(Base):
    __tablename__ = "meta"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
