"""
Planned route stop model.
"""

from sqlalchemy import Column, Integer, String, Float
from tracker.app.db.session import Base


class RouteStop(Base):
    """
    A planned waypoint of the trek.

    Read-mostly: only `arrival_time` changes after seeding.
    """
    __tablename__ = "route"

    id = Column(Integer, primary_key=True, autoincrement=True)
    seq = Column(Integer, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False, unique=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    arrival_time = Column(String, nullable=True)

    def __repr__(self):
        return f"<RouteStop(seq={self.seq}, name={self.name})>"
