from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Date, Time, Numeric, Text, Boolean, ForeignKey, TIMESTAMP, func, Index, CheckConstraint, false
from sqlalchemy.orm import relationship
from ..db_session import Base


def _utcnow():
    return datetime.now(timezone.utc)


class VisitModel(Base):
    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True) # Opaque partition key from the auth layer

    date = Column(Date, nullable=False, index=True)
    time = Column(Time, nullable=True) # Display only
    notes = Column(Text, nullable=True)
    is_no_show = Column(Boolean, nullable=False, default=False, server_default=false())

    created_at = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False)

    procedures = relationship(
        "VisitProcedureModel",
        back_populates="visit",
        cascade="all, delete-orphan",
        order_by="VisitProcedureModel.id",
    )

    __table_args__ = (
        Index('ix_visits_user_id_date', 'user_id', 'date'),
    )

    def __repr__(self):
        return f"<VisitModel(id={self.id}, user_id='{self.user_id}', date='{self.date}', is_no_show={self.is_no_show})>"


class VisitProcedureModel(Base):
    __tablename__ = "visit_procedures"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    visit_id = Column(Integer, ForeignKey("visits.id", ondelete="CASCADE"), nullable=False, index=True)

    # Snapshot of the reference code at the time the procedure was recorded,
    # not a foreign key to rvu_codes.
    hcpcs = Column(String(10), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    status_code = Column(String(5), nullable=False, default="A")
    work_rvu = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1, server_default='1')

    created_at = Column(TIMESTAMP(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    visit = relationship("VisitModel", back_populates="procedures")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_visit_procedures_quantity_positive"),
    )

    def __repr__(self):
        return f"<VisitProcedureModel(id={self.id}, visit_id={self.visit_id}, hcpcs='{self.hcpcs}', quantity={self.quantity})>"
