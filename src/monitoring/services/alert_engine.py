from __future__ import annotations

import logging
import operator
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from src.monitoring.errors import ValidationError
from src.monitoring.schemas.alerts import Alert, AlertRule, AlertRuleCreate, ComparisonOperator, MetricKey
from src.monitoring.schemas.common import Severity
from src.monitoring.schemas.metrics import MetricSnapshot

logger = logging.getLogger(__name__)

MetricResolver = Callable[[MetricSnapshot], float]

METRIC_RESOLVERS: Dict[MetricKey, MetricResolver] = {
    MetricKey.response_time_p50: lambda m: m.response_time.p50,
    MetricKey.response_time_p95: lambda m: m.response_time.p95,
    MetricKey.response_time_p99: lambda m: m.response_time.p99,
    MetricKey.response_time_average: lambda m: m.response_time.average,
    MetricKey.requests_per_second: lambda m: m.throughput.requests_per_second,
    MetricKey.error_rate: lambda m: m.system_health.error_rate,
    MetricKey.memory_usage: lambda m: m.system_health.memory_usage,
    MetricKey.cpu_usage: lambda m: m.system_health.cpu_usage,
    MetricKey.grading_queue_waiting: lambda m: float(m.grading_queue.waiting),
    MetricKey.grading_queue_active: lambda m: float(m.grading_queue.active),
    MetricKey.grading_queue_failed: lambda m: float(m.grading_queue.failed),
    MetricKey.grading_avg_processing_time: lambda m: m.grading_queue.avg_processing_time,
}

COMPARATORS: Dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.gt: operator.gt,
    ComparisonOperator.lt: operator.lt,
    ComparisonOperator.eq: operator.eq,
    ComparisonOperator.gte: operator.ge,
    ComparisonOperator.lte: operator.le,
}

DEFAULT_RULES: List[AlertRuleCreate] = [
    AlertRuleCreate(
        name="P95 Response Time SLO Breach",
        metric=MetricKey.response_time_p95,
        threshold=500,
        operator=ComparisonOperator.gt,
        severity=Severity.high,
        cooldown_period=300000,
    ),
    AlertRuleCreate(
        name="High Error Rate",
        metric=MetricKey.error_rate,
        threshold=5,
        operator=ComparisonOperator.gt,
        severity=Severity.medium,
        cooldown_period=180000,
    ),
    AlertRuleCreate(
        name="High Memory Usage",
        metric=MetricKey.memory_usage,
        threshold=85,
        operator=ComparisonOperator.gt,
        severity=Severity.medium,
        cooldown_period=300000,
    ),
    AlertRuleCreate(
        name="Grading Queue Backlog",
        metric=MetricKey.grading_queue_waiting,
        threshold=500,
        operator=ComparisonOperator.gt,
        severity=Severity.medium,
        cooldown_period=120000,
    ),
]


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _format_number(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else repr(float(v))


# PUBLIC_INTERFACE
def parse_rule(payload: Union[AlertRuleCreate, Mapping[str, Any]]) -> AlertRuleCreate:
    """Validate a rule definition; raises ValidationError with pydantic's error list in meta."""
    if isinstance(payload, AlertRuleCreate):
        payload = payload.model_dump()
    if not isinstance(payload, Mapping):
        raise ValidationError("alert rule must be an object")
    try:
        return AlertRuleCreate.model_validate(dict(payload))
    except PydanticValidationError as exc:
        errors = exc.errors(include_url=False)
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())) for e in errors)
        raise ValidationError(
            f"invalid alert rule: {fields}",
            meta={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
        ) from exc


def _within_cooldown(rule: AlertRule, now: datetime) -> bool:
    if rule.last_triggered is None or rule.cooldown_period <= 0:
        return False
    return (now - rule.last_triggered) < timedelta(milliseconds=rule.cooldown_period)


def _alert_message(rule: AlertRule, value: float) -> str:
    return f"{rule.name}: {rule.metric.value} is {_format_number(value)} (threshold: {_format_number(rule.threshold)})"


class AlertRuleEngine:
    """
    Named threshold rules and the alerts they raise.

    Each enabled rule is evaluated against a MetricSnapshot unless it is still
    cooling down from its last alert. Not thread-safe on its own;
    MonitoringService serializes access.
    """

    def __init__(self, install_defaults: bool = True) -> None:
        self._rules: Dict[str, AlertRule] = {}
        self._alerts: Dict[str, Alert] = {}
        if install_defaults:
            for rule in DEFAULT_RULES:
                self.add_rule(rule)

    def add_rule(self, payload: Union[AlertRuleCreate, Mapping[str, Any]]) -> AlertRule:
        parsed = parse_rule(payload)
        rule_id = _new_id("rule")
        while rule_id in self._rules:
            rule_id = _new_id("rule")
        rule = AlertRule(id=rule_id, **parsed.model_dump())
        self._rules[rule_id] = rule
        logger.info("Alert rule added ruleId=%s name=%s metric=%s", rule_id, rule.name, rule.metric.value)
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        removed = self._rules.pop(rule_id, None)
        if removed is None:
            return False
        logger.info("Alert rule removed ruleId=%s", rule_id)
        return True

    def rules(self) -> List[AlertRule]:
        return [r.model_copy(deep=True) for r in self._rules.values()]

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        rule = self._rules.get(rule_id)
        return rule.model_copy(deep=True) if rule else None

    def alerts(self, include_resolved: bool = False) -> List[Alert]:
        return [a.model_copy(deep=True) for a in self._alerts.values() if include_resolved or not a.resolved]

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    def evaluate(self, snapshot: MetricSnapshot, now: datetime) -> List[Alert]:
        """Evaluate every enabled rule outside its cooldown; returns the alerts raised."""
        raised: List[Alert] = []
        for rule in self._rules.values():
            if not rule.enabled:
                continue
            if _within_cooldown(rule, now):
                continue

            resolver = METRIC_RESOLVERS.get(rule.metric)
            if resolver is None:
                logger.warning("Skipping alert rule with unknown metric ruleId=%s metric=%s", rule.id, rule.metric)
                continue
            value = float(resolver(snapshot))

            if COMPARATORS[rule.operator](value, float(rule.threshold)):
                raised.append(self._raise(rule, value, now))
        return raised

    def _raise(self, rule: AlertRule, value: float, now: datetime) -> Alert:
        alert_id = _new_id("alert")
        while alert_id in self._alerts:
            alert_id = _new_id("alert")
        alert = Alert(
            id=alert_id,
            rule_id=rule.id,
            message=_alert_message(rule, value),
            severity=rule.severity,
            timestamp=now,
            value=value,
            threshold=float(rule.threshold),
            resolved=False,
        )
        self._alerts[alert_id] = alert
        rule.last_triggered = now
        logger.warning(
            "Alert triggered alertId=%s ruleId=%s severity=%s message=%s",
            alert_id,
            rule.id,
            rule.severity.value,
            alert.message,
        )
        return alert.model_copy(deep=True)

    def resolve(self, alert_id: str, now: datetime) -> Optional[Alert]:
        """Mark an open alert resolved; None when the id is unknown or already resolved."""
        alert = self._alerts.get(alert_id)
        if alert is None or alert.resolved:
            return None
        alert.resolved = True
        alert.resolved_at = now
        logger.info("Alert resolved alertId=%s ruleId=%s", alert_id, alert.rule_id)
        return alert.model_copy(deep=True)
