from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index, func
from freshmarket.database import Base


# Audit trail: who did what to which order, product or payment.
# Rows are written after the business change has committed.
class Log(Base):
    __tablename__ = "logs"
    __table_args__ = (Index("ix_logs_resource_ref", "resource", "resource_id"),)

    id = Column(Integer, primary_key=True, index=True)

    ts = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    # Null for gateway callbacks and failed logins
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String(50), index=True)
    resource = Column(String(50), index=True)
    resource_id = Column(Integer, nullable=True)
    status = Column(String(20), index=True)
    ip = Column(String(64), nullable=True)

    meta = Column(JSON, nullable=True)
