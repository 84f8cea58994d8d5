import pandas as pd

from mailguard.evaluation.replay import compare_policies, main, records_from_frame, replay
from mailguard.schemas import Policy


def _frame():
    return pd.DataFrame(
        [
            {"message_id": "clean", "from_address": "a@example.com", "to_address": "u@corp.com",
             "spf_pass": True, "dkim_pass": True, "dmarc_pass": True, "ml_score": 0.05,
             "attachments": None, "label": 0},
            {"message_id": "borderline", "from_address": "b@example.com", "to_address": "u@corp.com",
             "spf_pass": True, "dkim_pass": True, "dmarc_pass": True, "ml_score": 0.6,
             "attachments": "a.pdf;b.zip", "label": 1},
            {"message_id": "phish", "from_address": "c@evil.net", "to_address": "u@corp.com",
             "spf_pass": False, "dkim_pass": False, "dmarc_pass": False, "ml_score": 0.95,
             "attachments": None, "label": 1},
            {"message_id": "broken", "from_address": None, "to_address": "u@corp.com",
             "spf_pass": True, "dkim_pass": True, "dmarc_pass": True, "ml_score": 0.1,
             "attachments": None, "label": None},
        ]
    )


def test_records_from_frame_splits_lists():
    recs = records_from_frame(_frame())
    assert recs[1]["attachments"] == ["a.pdf", "b.zip"]
    assert recs[0]["attachments"] == []
    assert recs[3]["from_address"] is None


def test_replay_summary():
    out_df, summary = replay(_frame(), Policy())
    assert list(out_df["disposition"]) == ["allowed", "suspicious", "blocked", "suspicious"]
    assert summary.total_rows == 4
    assert summary.failed_rows == 1
    assert summary.disposition_counts == {"suspicious": 2, "allowed": 1, "blocked": 1}
    assert summary.metrics["tp"] == 1.0
    assert summary.metrics["fn"] == 1.0
    assert summary.metrics["tn"] == 1.0


def test_compare_policies():
    changed = compare_policies(_frame(), Policy(), Policy(quarantine_threshold=0.55))
    assert list(changed["message_id"]) == ["borderline"]
    assert changed.loc[0, "baseline"] == "suspicious"
    assert changed.loc[0, "candidate"] == "quarantined"


def test_main_writes_changed_rows(tmp_path, capsys):
    csv_path = tmp_path / "messages.csv"
    _frame().to_csv(csv_path, index=False)
    out = tmp_path / "changed.csv"
    assert main([str(csv_path), "--quarantine", "0.55", "--out", str(out)]) == 0
    assert "changed_rows" in capsys.readouterr().out
    assert len(pd.read_csv(out)) == 1


def test_main_missing_file(tmp_path):
    assert main([str(tmp_path / "nope.csv")]) == 1


def test_main_rejects_inverted_thresholds(tmp_path, capsys):
    csv_path = tmp_path / "messages.csv"
    _frame().to_csv(csv_path, index=False)
    assert main([str(csv_path), "--block", "0.5", "--quarantine", "0.8"]) == 1
    assert capsys.readouterr().out == ""


def test_main_replays_each_policy_once(tmp_path, monkeypatch):
    import mailguard.evaluation.replay as replay_mod

    calls = []
    real_replay = replay_mod.replay

    def counting_replay(*args, **kwargs):
        calls.append(1)
        return real_replay(*args, **kwargs)

    monkeypatch.setattr(replay_mod, "replay", counting_replay)
    csv_path = tmp_path / "messages.csv"
    _frame().to_csv(csv_path, index=False)
    assert main([str(csv_path), "--quarantine", "0.55"]) == 0
    assert len(calls) == 2
