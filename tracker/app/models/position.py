"""
Position database model.

One reported location of the streamer. `created_at` is kept as the civil
ISO-8601 string it was recorded with.
"""

from sqlalchemy import Column, Integer, String, Float, Index
from tracker.app.db.session import Base


class Position(Base):
    """Relational position row; the auto-increment id is also the document key after migration."""
    __tablename__ = "positions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    streamer = Column(String, nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    created_at = Column(String, nullable=False)

    __table_args__ = (
        Index("idx_positions_created_at", "created_at"),
    )

    def __repr__(self):
        return f"<Position(id={self.id}, lat={self.lat}, lng={self.lng}, created_at={self.created_at})>"
