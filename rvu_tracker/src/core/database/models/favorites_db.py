from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, TIMESTAMP, func, UniqueConstraint
from ..db_session import Base

class FavoriteModel(Base):
    __tablename__ = "favorites"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    hcpcs = Column(String(10), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0, server_default='0')

    created_at = Column(
        TIMESTAMP(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint('user_id', 'hcpcs', name='uq_favorites_user_hcpcs'),
    )

    def __repr__(self):
        return f"<FavoriteModel(id={self.id}, user_id='{self.user_id}', hcpcs='{self.hcpcs}', sort_order={self.sort_order})>"
