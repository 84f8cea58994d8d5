from fastapi import APIRouter

from .. import state
from ..db import db_health

router = APIRouter()


@router.get("")
def health():
    """
    Service status. The database is only probed when results are persisted;
    an unreachable database then reports the service as degraded.
    """
    if not state.settings.persist_results:
        return {"status": "ok", "persistence": False, "db": None}
    db_ok = db_health()
    return {"status": "ok" if db_ok else "degraded", "persistence": True, "db": db_ok}
