from sqlalchemy import Column, Integer, String, Numeric, Text, TIMESTAMP, func
from ..db_session import Base

class RVUCodeModel(Base):
    __tablename__ = "rvu_codes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # HCPCS codes are 4-5 alphanumeric characters, e.g. "99213", "G0439"
    hcpcs = Column(String(10), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=False, default="")
    status_code = Column(String(5), nullable=False, default="A")

    # Work RVU weights are published with two decimal places.
    work_rvu = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<RVUCodeModel(id={self.id}, hcpcs='{self.hcpcs}', work_rvu={self.work_rvu})>"
