from __future__ import annotations

import pytest

from migratorx.domain.findings import (
    Finding,
    ResultAggregator,
    Severity,
    Summary,
    has_block,
    summarize,
)


def test_severity_is_ordered():
    assert Severity.INFO < Severity.WARN < Severity.BLOCK
    assert str(Severity.BLOCK) == "BLOCK"


def test_finding_rejects_blank_message():
    with pytest.raises(ValueError):
        Finding.info("   ")


def test_finding_meta_is_copied_and_read_only():
    meta = {"table": "orders"}
    finding = Finding(Severity.WARN, "drift", meta)
    meta["table"] = "customers"

    assert finding.meta["table"] == "orders"
    with pytest.raises(TypeError):
        finding.meta["table"] = "other"  # type: ignore[index]


def test_finding_coerces_integer_severity():
    assert Finding(2, "boom").severity is Severity.BLOCK


def test_with_meta_does_not_override_existing_keys():
    finding = Finding.info("ok", check="schema_parity")
    tagged = finding.with_meta(check="other", step="preflight")

    assert dict(tagged.meta) == {"check": "schema_parity", "step": "preflight"}
    assert dict(finding.meta) == {"check": "schema_parity"}


def test_to_dict_omits_empty_meta():
    assert Finding.block("stop").to_dict() == {"severity": "BLOCK", "message": "stop"}
    assert Finding.warn("careful", host="db").to_dict()["meta"] == {"host": "db"}


def test_summary_addition_is_commutative_and_associative():
    a = Summary(info=1, warn=2, block=0)
    b = Summary(info=0, warn=1, block=3)
    c = Summary(info=4, warn=0, block=1)

    assert a + b == b + a
    assert (a + b) + c == a + (b + c)
    assert a + Summary() == a


def test_summarize_counts_each_severity():
    findings = [Finding.info("a"), Finding.warn("b"), Finding.warn("c"), Finding.block("d")]

    summary = summarize(findings)

    assert summary == Summary(info=1, warn=2, block=1)
    assert summary.blocked
    assert not summary.clean
    assert summary.count(Severity.WARN) == 2
    assert has_block(findings)
    assert str(summary) == "Summary: 1 INFO / 2 WARN / 1 BLOCK"


def test_result_aggregator_stays_blocked():
    aggregator = ResultAggregator()

    assert aggregator.add_findings([Finding.info("ok")]) is True
    assert aggregator.add_findings([Finding.block("stop")]) is False
    assert aggregator.add_findings([Finding.info("later")]) is False

    assert aggregator.blocked
    assert len(aggregator.findings) == 3
    assert aggregator.summary_string() == "Summary: 2 INFO / 0 WARN / 1 BLOCK"
