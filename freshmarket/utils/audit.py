from typing import List, Optional

from sqlalchemy.orm import Session
from freshmarket.models.log import Log


def client_ip(request) -> Optional[str]:
    return request.client.host if request is not None and request.client else None


def write_log(db: Session, *, user_id, action, resource, resource_id=None, status="SUCCESS", ip=None, meta=None):
    entry = Log(
        user_id=user_id, action=action, resource=resource, resource_id=resource_id,
        status=status, ip=(ip or None) and ip[:64], meta=meta or {},
    )
    db.add(entry)
    db.commit()


def history_of(db: Session, resource: str, resource_id: int) -> List[Log]:
    """Audit entries for one order or product, oldest first."""
    return (
        db.query(Log)
        .filter(Log.resource == resource, Log.resource_id == resource_id)
        .order_by(Log.id)
        .all()
    )
