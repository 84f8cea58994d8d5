"""Optional write-through of results and alerts, enabled by MAILGUARD_PERSIST_RESULTS."""

import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from .. import state
from ..db import SessionLocal
from ..repository import save_alert, save_evaluation
from ..schemas import Alert, EvaluationResult

logger = logging.getLogger(__name__)


def persist(tenant_id: str, results: Iterable[EvaluationResult] = (), alerts: Iterable[Optional[Alert]] = ()) -> None:
    if not state.settings.persist_results:
        return
    try:
        with SessionLocal() as session, session.begin():
            for result in results:
                save_evaluation(session, tenant_id, result)
            for alert in alerts:
                if alert is not None:
                    save_alert(session, alert)
    except SQLAlchemyError:
        # Storage is downstream of the decision; the caller still gets its result.
        logger.exception("Failed to persist evaluation output for tenant %s", tenant_id)
