"""
Policy replay:
- Loads a CSV of previously seen messages (one row per message)
- Re-evaluates every row under a baseline and a candidate policy
- Reports disposition counts, rows whose disposition changes, and label
  metrics when a `label` column (1 = malicious) is present

Run from api/:
    python -m mailguard.evaluation.replay messages.csv --block 0.85 --quarantine 0.6
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from ..config import ScoringWeights, load_weights
from ..errors import ConfigurationError
from ..pipeline.classify import evaluate_batch
from ..pipeline.decision import validate_policy
from ..pipeline.filters import CompiledRule
from ..schemas import Policy

logger = logging.getLogger(__name__)

# Columns holding lists are stored as ";"-separated strings in CSV.
_LIST_COLUMNS = ("attachments", "urls")
_FLAGGED = {"quarantined", "blocked"}


@dataclass
class ReplaySummary:
    total_rows: int
    disposition_counts: Dict[str, int]
    failed_rows: int
    metrics: Dict[str, float]


def load_messages(csv_path: Path) -> pd.DataFrame:
    return pd.read_csv(csv_path)


def records_from_frame(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert rows to raw message mappings, mapping NaN to None."""
    records: List[Dict[str, Any]] = []
    for row in df.to_dict(orient="records"):
        rec: Dict[str, Any] = {}
        for key, value in row.items():
            if isinstance(value, float) and pd.isna(value):
                value = None
            if key in _LIST_COLUMNS:
                value = [p.strip() for p in str(value).split(";") if p.strip()] if value else []
            rec[key] = value
        records.append(rec)
    return records


def _metrics(labels: pd.Series, flagged: pd.Series) -> Dict[str, float]:
    tp = int(((labels == 1) & flagged).sum())
    tn = int(((labels == 0) & ~flagged).sum())
    fp = int(((labels == 0) & flagged).sum())
    fn = int(((labels == 1) & ~flagged).sum())
    precision = tp / (tp + fp) if (tp + fp) else 0.0
    recall = tp / (tp + fn) if (tp + fn) else 0.0
    f1 = (2 * precision * recall) / (precision + recall) if (precision + recall) else 0.0
    return {
        "tp": float(tp),
        "tn": float(tn),
        "fp": float(fp),
        "fn": float(fn),
        "precision": float(precision),
        "recall": float(recall),
        "f1": float(f1),
    }


def replay(
    df: pd.DataFrame,
    policy: Policy,
    rules: Sequence[CompiledRule] = (),
    weights: Optional[ScoringWeights] = None,
    max_workers: int = 4,
) -> Tuple[pd.DataFrame, ReplaySummary]:
    """Evaluate every row under policy; returns per-row results and a summary."""
    records = records_from_frame(df)
    results = evaluate_batch(records, policy, rules, weights=weights, max_workers=max_workers)

    out_df = pd.DataFrame(
        {
            "message_id": [r.message_id for r in results],
            "disposition": [r.disposition for r in results],
            "risk_score": [r.risk_score for r in results],
            "reason": [r.quarantine_reason for r in results],
            "forcing_rule_id": [r.forcing_rule_id for r in results],
            "evaluation_error": [r.evaluation_error for r in results],
        }
    )

    metrics: Dict[str, float] = {}
    if "label" in df.columns and not out_df.empty:
        labels = pd.to_numeric(df["label"], errors="coerce").reset_index(drop=True)
        known = labels.notna()
        flagged = out_df["disposition"].isin(_FLAGGED)
        metrics = _metrics(labels[known].astype(int), flagged[known])

    counts = out_df["disposition"].value_counts().to_dict() if not out_df.empty else {}
    summary = ReplaySummary(
        total_rows=int(len(df)),
        disposition_counts={str(k): int(v) for k, v in counts.items()},
        failed_rows=int(out_df["evaluation_error"].notna().sum()) if not out_df.empty else 0,
        metrics=metrics,
    )
    return out_df, summary


def compare_policies(
    df: pd.DataFrame,
    baseline: Policy,
    candidate: Policy,
    rules: Sequence[CompiledRule] = (),
    weights: Optional[ScoringWeights] = None,
) -> pd.DataFrame:
    """Rows whose disposition differs between baseline and candidate policy."""
    base_df, _ = replay(df, baseline, rules, weights)
    cand_df, _ = replay(df, candidate, rules, weights)
    return changed_rows(base_df, cand_df)


def changed_rows(base_df: pd.DataFrame, cand_df: pd.DataFrame) -> pd.DataFrame:
    merged = pd.DataFrame(
        {
            "message_id": base_df["message_id"],
            "risk_score": base_df["risk_score"],
            "baseline": base_df["disposition"],
            "candidate": cand_df["disposition"],
        }
    )
    return merged[merged["baseline"] != merged["candidate"]].reset_index(drop=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Replay stored messages under a candidate policy")
    parser.add_argument("csv", type=Path, help="CSV with one message per row")
    parser.add_argument("--block", type=float, default=None, help="Candidate block threshold")
    parser.add_argument("--quarantine", type=float, default=None, help="Candidate quarantine threshold")
    parser.add_argument("--out", type=Path, default=None, help="Write changed rows to this CSV")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    if not args.csv.exists():
        logger.error("Dataset not found: %s", args.csv)
        return 1

    df = load_messages(args.csv)
    weights = load_weights()
    baseline = Policy()
    changes = {}
    if args.block is not None:
        changes["block_threshold"] = args.block
    if args.quarantine is not None:
        changes["quarantine_threshold"] = args.quarantine
    candidate = baseline.model_copy(update=changes)
    try:
        validate_policy(candidate)
    except ConfigurationError as e:
        logger.error("Invalid candidate policy: %s", e)
        return 1

    base_df, base_summary = replay(df, baseline, weights=weights)
    cand_df, cand_summary = replay(df, candidate, weights=weights)
    changed = changed_rows(base_df, cand_df)

    print(json.dumps({"baseline": asdict(base_summary), "candidate": asdict(cand_summary),
                      "changed_rows": int(len(changed))}, indent=2))
    if args.out is not None:
        changed.to_csv(args.out, index=False)
        logger.info("Wrote %d changed rows to %s", len(changed), args.out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
