from mailguard.pipeline.filters import compile_rule, evaluate_filters
from mailguard.pipeline.normalize import normalize
from mailguard.schemas import ContentFilterRule


def _rule(rule_id, type_, pattern, action="quarantine", priority=1, enabled=True, name=None):
    return ContentFilterRule(
        id=rule_id,
        name=name or f"rule {rule_id}",
        type=type_,
        pattern=pattern,
        action=action,
        priority=priority,
        enabled=enabled,
    )


def test_keyword_match_is_case_insensitive(make_raw):
    signals = normalize(make_raw(subject="urgent: act now"))
    matches, warnings = evaluate_filters(signals, [_rule("1", "keyword", "URGENT|verify")])
    assert warnings == []
    assert len(matches) == 1
    assert matches[0].rule_id == "1"
    assert matches[0].matched_field == "subject"


def test_domain_rule_matches_sender_domain(make_raw):
    signals = normalize(make_raw(from_address="security@paypaI.com"))
    matches, _ = evaluate_filters(signals, [_rule("2", "domain", r"paypai\.com|microsft\.com", action="block")])
    assert [m.action for m in matches] == ["block"]
    assert matches[0].matched_field == "sender_domain"


def test_url_rule_matches_extracted_urls(make_raw):
    signals = normalize(make_raw(body_text="Click https://bit.ly/reset now"))
    matches, _ = evaluate_filters(signals, [_rule("4", "url", r"bit\.ly|tinyurl\.com")])
    assert len(matches) == 1
    assert matches[0].matched_field == "url_host"


def test_header_rule_matches_header_values(make_raw):
    signals = normalize(make_raw(headers={"X-Mailer": "BulkMailer 2.0"}))
    matches, _ = evaluate_filters(signals, [_rule("5", "header", "bulkmailer")])
    assert matches[0].matched_field == "header:x-mailer"


def test_attachment_pattern_is_tested_per_filename(make_raw):
    signals = normalize(make_raw(attachments=["invoice.docm", "notes.txt"]))
    matches, _ = evaluate_filters(signals, [_rule("3", "attachment", r"\.(docm|xlsm)$", action="block")])
    assert len(matches) == 1
    assert matches[0].matched_text == ".docm"


def test_keyword_rule_does_not_look_at_attachments(make_raw):
    signals = normalize(make_raw(attachments=["urgent.pdf"]))
    matches, _ = evaluate_filters(signals, [_rule("1", "keyword", "urgent")])
    assert matches == []


def test_empty_rule_set(make_raw):
    signals = normalize(make_raw(subject="urgent"))
    assert evaluate_filters(signals, []) == ([], [])


def test_disabled_rules_are_invisible(make_raw):
    signals = normalize(make_raw(subject="urgent"))
    matches, warnings = evaluate_filters(signals, [_rule("1", "keyword", "urgent", enabled=False)])
    assert matches == []
    assert warnings == []


def test_malformed_pattern_skips_only_that_rule(make_raw):
    signals = normalize(make_raw(subject="urgent"))
    rules = [_rule("bad", "keyword", "(["), _rule("good", "keyword", "urgent")]
    matches, warnings = evaluate_filters(signals, rules)
    assert [m.rule_id for m in matches] == ["good"]
    assert len(warnings) == 1
    assert "bad" in warnings[0]


def test_compile_rule_records_error():
    compiled = compile_rule(_rule("bad", "keyword", "(["))
    assert compiled.regex is None
    assert "invalid pattern" in compiled.error


def test_matches_sorted_by_priority_then_creation_order(make_raw):
    signals = normalize(make_raw(subject="urgent invoice"))
    rules = [
        _rule("late-block", "keyword", "invoice", action="block", priority=3),
        _rule("first-p1", "keyword", "urgent", action="quarantine", priority=1),
        _rule("second-p1", "keyword", "urgent", action="allow", priority=1),
    ]
    matches, _ = evaluate_filters(signals, rules)
    assert [m.rule_id for m in matches] == ["first-p1", "second-p1", "late-block"]


def test_precompiled_rules_keep_their_sequence(make_raw):
    signals = normalize(make_raw(subject="urgent"))
    a = compile_rule(_rule("a", "keyword", "urgent"), seq=10)
    b = compile_rule(_rule("b", "keyword", "urgent"), seq=2)
    matches, _ = evaluate_filters(signals, [a, b])
    assert [m.rule_id for m in matches] == ["b", "a"]
