"""Persistence of evaluation results and alerts through SQLAlchemy sessions."""

from typing import List

import sqlalchemy as sa
from sqlalchemy.orm import Session

from .models import AlertRecord, Base, Evaluation
from .schemas import Alert, EvaluationResult


def init_schema(bind: sa.engine.Engine) -> None:
    Base.metadata.create_all(bind)


def save_evaluation(session: Session, tenant_id: str, result: EvaluationResult) -> Evaluation:
    row = Evaluation(
        tenant_id=tenant_id,
        message_id=result.message_id,
        disposition=result.disposition,
        risk_score=result.risk_score,
        quarantine_reason=result.quarantine_reason,
        forcing_rule_id=result.forcing_rule_id,
        evaluation_error=result.evaluation_error,
        policy_version=result.policy_version,
        risk_factors=[f.model_dump() for f in result.risk_factors],
        indicators=[i.model_dump() for i in result.indicators],
        warnings=list(result.warnings),
    )
    session.add(row)
    session.flush()
    return row


def save_alert(session: Session, alert: Alert) -> AlertRecord:
    """Insert or refresh an alert row; acknowledgement is the only field that changes."""
    row = session.get(AlertRecord, alert.id)
    if row is None:
        row = AlertRecord(
            id=alert.id,
            tenant_id=alert.tenant_id,
            message_id=alert.message_id,
            severity=alert.severity,
            title=alert.title,
            description=alert.description,
            category=alert.category,
            acknowledged=alert.acknowledged,
            created_at=alert.created_at,
        )
        session.add(row)
    else:
        row.acknowledged = row.acknowledged or alert.acknowledged
    session.flush()
    return row


def recent_evaluations(session: Session, tenant_id: str, limit: int = 50) -> List[Evaluation]:
    stmt = (
        sa.select(Evaluation)
        .where(Evaluation.tenant_id == tenant_id)
        .order_by(Evaluation.id.desc())
        .limit(int(limit))
    )
    return list(session.scalars(stmt))
