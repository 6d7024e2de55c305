from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from src.monitoring.errors import ValidationError
from src.monitoring.schemas.alerts import ComparisonOperator, MetricKey
from src.monitoring.schemas.common import Severity
from src.monitoring.schemas.metrics import MetricSnapshot, SystemHealthStats
from src.monitoring.services.alert_engine import AlertRuleEngine

SLO_RULE = "P95 Response Time SLO Breach"


def _rule_by_name(service, name):
    return next(r for r in service.get_alert_rules() if r.name == name)


def test_default_rules_installed(service):
    rules = {r.name: r for r in service.get_alert_rules()}
    assert set(rules) == {SLO_RULE, "High Error Rate", "High Memory Usage", "Grading Queue Backlog"}

    slo = rules[SLO_RULE]
    assert slo.metric is MetricKey.response_time_p95
    assert slo.threshold == 500
    assert slo.operator is ComparisonOperator.gt
    assert slo.severity is Severity.high
    assert slo.cooldown_period == 300000
    assert slo.last_triggered is None
    assert rules["Grading Queue Backlog"].cooldown_period == 120000


def test_slo_rule_raises_alert_for_p95_650(service, sink, clock):
    service.record_response_time("grade", 650)

    raised = service.evaluate_alert_rules()

    assert len(raised) == 1
    alert = raised[0]
    assert alert.value == 650
    assert alert.threshold == 500
    assert alert.severity is Severity.high
    assert alert.resolved is False
    assert alert.resolved_at is None
    assert alert.rule_id == _rule_by_name(service, SLO_RULE).id
    assert alert.message == "P95 Response Time SLO Breach: response_time_p95 is 650 (threshold: 500)"
    assert alert.timestamp == clock()

    assert [a.id for a in service.get_active_alerts()] == [alert.id]
    assert _rule_by_name(service, SLO_RULE).last_triggered == clock()
    assert sink.named("alert")[0]["id"] == alert.id


def test_cooldown_suppresses_until_period_elapses(service, clock):
    service.record_response_time("grade", 650)
    t0 = clock()
    assert len(service.evaluate_alert_rules()) == 1

    clock.advance(1)
    assert service.evaluate_alert_rules() == []
    clock.advance(299998)  # t0 + 299999ms
    assert service.evaluate_alert_rules() == []
    assert _rule_by_name(service, SLO_RULE).last_triggered == t0

    clock.advance(1)  # t0 + 300000ms
    raised = service.evaluate_alert_rules()
    assert len(raised) == 1
    assert _rule_by_name(service, SLO_RULE).last_triggered == t0 + timedelta(milliseconds=300000)
    assert len(service.get_active_alerts()) == 2


def test_last_triggered_unchanged_when_condition_does_not_hold(service):
    service.record_response_time("grade", 100)
    assert service.evaluate_alert_rules() == []
    assert all(r.last_triggered is None for r in service.get_alert_rules())


def test_disabled_rule_is_not_evaluated(clock):
    engine = AlertRuleEngine(install_defaults=False)
    rule = engine.add_rule(
        {"name": "cpu", "metric": "cpu_usage", "threshold": 10, "operator": "gt", "enabled": False}
    )
    snap = MetricSnapshot(system_health=SystemHealthStats(cpu_usage=99))
    assert engine.evaluate(snap, clock()) == []
    assert engine.get_rule(rule.id).last_triggered is None


@pytest.mark.parametrize(
    "op,value,threshold,expected",
    [
        ("gt", 51, 50, True),
        ("gt", 50, 50, False),
        ("lt", 49, 50, True),
        ("lt", 50, 50, False),
        ("eq", 50, 50, True),
        ("eq", 50.5, 50, False),
        ("gte", 50, 50, True),
        ("gte", 49.9, 50, False),
        ("lte", 50, 50, True),
        ("lte", 50.1, 50, False),
    ],
)
def test_comparison_operators(clock, op, value, threshold, expected):
    engine = AlertRuleEngine(install_defaults=False)
    engine.add_rule({"name": f"cpu {op}", "metric": "cpu_usage", "threshold": threshold, "operator": op})
    snap = MetricSnapshot(system_health=SystemHealthStats(cpu_usage=value))
    assert bool(engine.evaluate(snap, clock())) is expected


def test_resolve_alert_exactly_once(service, sink, clock):
    service.record_response_time("grade", 650)
    alert = service.evaluate_alert_rules()[0]

    clock.advance(1000)
    resolved_at = clock()
    assert service.resolve_alert(alert.id) is True

    clock.advance(1000)
    assert service.resolve_alert(alert.id) is False

    stored = service.get_alert(alert.id)
    assert stored.resolved is True
    assert stored.resolved_at == resolved_at
    assert service.get_active_alerts() == []
    assert [a.id for a in service.get_alerts(include_resolved=True)] == [alert.id]
    assert len(sink.named("alert_resolved")) == 1


def test_resolve_unknown_alert_is_noop(service):
    assert service.resolve_alert("alert_missing") is False


def test_add_and_remove_alert_rule(service):
    rule_id = service.add_alert_rule(
        {
            "name": "Queue failures",
            "metric": "grading_queue_failed",
            "threshold": 10,
            "operator": "gte",
            "severity": "critical",
            "enabled": True,
            "cooldownPeriod": 60000,
        }
    )
    assert rule_id in {r.id for r in service.get_alert_rules()}
    assert service.get_alert_rule(rule_id).cooldown_period == 60000

    assert service.remove_alert_rule(rule_id) is True
    assert rule_id not in {r.id for r in service.get_alert_rules()}
    assert service.remove_alert_rule(rule_id) is False


def test_rule_ids_are_unique(service):
    ids = {service.add_alert_rule({"name": f"r{i}", "metric": "error_rate", "threshold": i}) for i in range(50)}
    assert len(ids) == 50


@pytest.mark.parametrize(
    "payload",
    [
        {"metric": "error_rate", "threshold": 5},
        {"name": "  ", "metric": "error_rate", "threshold": 5},
        {"name": "x", "metric": "lessons_per_hour", "threshold": 5},
        {"name": "x", "metric": "error_rate", "threshold": "lots"},
        {"name": "x", "metric": "error_rate", "threshold": 5, "operator": "ne"},
        {"name": "x", "metric": "error_rate", "threshold": 5, "severity": "urgent"},
        {"name": "x", "metric": "error_rate", "threshold": 5, "cooldownPeriod": -1},
        {"name": "x", "metric": "error_rate", "threshold": float("nan")},
        "not a rule",
    ],
)
def test_invalid_rules_are_rejected_and_not_stored(service, payload):
    before = len(service.get_alert_rules())
    with pytest.raises(ValidationError):
        service.add_alert_rule(payload)
    assert len(service.get_alert_rules()) == before


def test_queue_update_evaluates_rules_on_demand(service):
    raised = service.update_grading_queue_metrics(
        {"waiting": 600, "active": 4, "completed": 100, "failed": 2, "avgProcessingTime": 1200}
    )
    assert [a.message for a in raised] == ["Grading Queue Backlog: grading_queue_waiting is 600 (threshold: 500)"]
    assert service.get_current_metrics().grading_queue.waiting == 600

    with pytest.raises(ValidationError):
        service.update_grading_queue_metrics({"waiting": -3})


def test_alert_message_keeps_full_precision(clock):
    engine = AlertRuleEngine(install_defaults=False)
    engine.add_rule({"name": "cpu", "metric": "cpu_usage", "threshold": 50, "operator": "gt"})

    raised = engine.evaluate(MetricSnapshot(system_health=SystemHealthStats(cpu_usage=65.1234567)), clock())

    assert raised[0].message == "cpu: cpu_usage is 65.1234567 (threshold: 50)"
    assert raised[0].value == 65.1234567


def test_unresolvable_metric_key_is_skipped(clock, caplog):
    engine = AlertRuleEngine(install_defaults=False)
    rule = engine.add_rule({"name": "p95", "metric": "response_time_p95", "threshold": 0, "operator": "gte"})
    # Simulate a rule stored with a key outside the resolver table.
    engine._rules[rule.id] = rule.model_copy(update={"metric": "lessons_per_hour"})

    assert engine.evaluate(MetricSnapshot(), clock()) == []
    assert "unknown metric" in caplog.text


@pytest.mark.anyio
async def test_rule_crud_api(async_client: httpx.AsyncClient):
    res = await async_client.get("/api/alerts/rules")
    assert res.status_code == 200
    assert res.json()["total"] == 4

    payload = {
        "name": "High CPU",
        "metric": "cpu_usage",
        "threshold": 90,
        "operator": "gt",
        "severity": "low",
        "cooldownPeriod": 1000,
    }
    res = await async_client.post("/api/alerts/rules", json=payload)
    assert res.status_code == 201, res.text
    body = res.json()
    rule_id = body["ruleId"]
    assert body["rule"]["name"] == "High CPU"
    assert body["rule"]["lastTriggered"] is None

    res = await async_client.get(f"/api/alerts/rules/{rule_id}")
    assert res.status_code == 200

    res = await async_client.delete(f"/api/alerts/rules/{rule_id}")
    assert res.status_code == 204
    res = await async_client.delete(f"/api/alerts/rules/{rule_id}")
    assert res.status_code == 404


@pytest.mark.anyio
async def test_invalid_rule_api_returns_400(async_client: httpx.AsyncClient):
    res = await async_client.post("/api/alerts/rules", json={"name": "x", "metric": "nope", "threshold": 1})
    assert res.status_code == 400
    body = res.json()
    assert body["code"] == "invalid_alert_rule"
    assert "metric" in body["detail"]

    res = await async_client.get("/api/alerts/rules")
    assert res.json()["total"] == 4


@pytest.mark.anyio
async def test_alert_resolve_api(async_client: httpx.AsyncClient, service):
    service.record_response_time("grade", 650)
    service.evaluate_alert_rules()

    res = await async_client.get("/api/alerts")
    assert res.status_code == 200
    items = res.json()["items"]
    assert len(items) == 1
    alert_id = items[0]["id"]
    assert items[0]["severity"] == "high"

    res = await async_client.post(f"/api/alerts/{alert_id}/resolve")
    assert res.status_code == 200
    assert res.json()["resolved"] is True
    assert res.json()["resolvedAt"] is not None

    res = await async_client.post(f"/api/alerts/{alert_id}/resolve")
    assert res.status_code == 404

    res = await async_client.get("/api/alerts")
    assert res.json()["total"] == 0
    res = await async_client.get("/api/alerts", params={"includeResolved": "true"})
    assert res.json()["total"] == 1


@pytest.mark.anyio
async def test_grading_queue_api_raises_backlog_alert(async_client: httpx.AsyncClient):
    res = await async_client.put(
        "/api/metrics/grading-queue",
        json={"waiting": 750, "active": 3, "completed": 10, "failed": 0, "avgProcessingTime": 900},
    )
    assert res.status_code == 200, res.text
    raised = res.json()
    assert len(raised) == 1
    assert raised[0]["value"] == 750
