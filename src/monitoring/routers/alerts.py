from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, HTTPException, Path, Query, Request, status
from fastapi.responses import JSONResponse

from src.monitoring.errors import ValidationError
from src.monitoring.schemas.alerts import (
    Alert,
    AlertListResponse,
    AlertRule,
    AlertRuleCreatedResponse,
    AlertRuleListResponse,
)
from src.monitoring.schemas.common import ErrorResponse
from src.monitoring.state import get_state

router = APIRouter(prefix="/api/alerts", tags=["Alerts"])


@router.get(
    "",
    response_model=AlertListResponse,
    summary="List alerts",
    description="List unresolved alerts; pass includeResolved=true to include resolved ones.",
    operation_id="list_alerts",
)
def list_alerts(
    request: Request,
    include_resolved: bool = Query(default=False, alias="includeResolved"),
) -> AlertListResponse:
    """List alerts."""
    items = get_state(request.app).monitor.get_alerts(include_resolved=include_resolved)
    return AlertListResponse(items=items, total=len(items))


@router.get(
    "/rules",
    response_model=AlertRuleListResponse,
    summary="List alert rules",
    description="List every registered alert rule, including the defaults installed at startup.",
    operation_id="list_alert_rules",
)
def list_rules(request: Request) -> AlertRuleListResponse:
    """List alert rules."""
    items = get_state(request.app).monitor.get_alert_rules()
    return AlertRuleListResponse(items=items, total=len(items))


@router.post(
    "/rules",
    response_model=AlertRuleCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Create alert rule",
    description="Register a new threshold rule. Invalid definitions are rejected with 400 and not stored.",
    operation_id="create_alert_rule",
)
def create_rule(request: Request, payload: Dict[str, Any] = Body(...)):
    """Create an alert rule."""
    monitor = get_state(request.app).monitor
    try:
        rule_id = monitor.add_alert_rule(payload)
    except ValidationError as exc:
        body = ErrorResponse(detail=exc.message, code="invalid_alert_rule", meta=exc.meta)
        return JSONResponse(status_code=400, content=body.model_dump())
    rule = monitor.get_alert_rule(rule_id)
    return AlertRuleCreatedResponse(rule_id=rule_id, rule=rule)


@router.get(
    "/rules/{rule_id}",
    response_model=AlertRule,
    responses={404: {"model": ErrorResponse}},
    summary="Get alert rule",
    operation_id="get_alert_rule",
)
def get_rule(request: Request, rule_id: str = Path(..., description="Rule id.")) -> AlertRule:
    """Get a rule by id."""
    rule = get_state(request.app).monitor.get_alert_rule(rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="rule not found")
    return rule


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Delete alert rule",
    operation_id="delete_alert_rule",
)
def delete_rule(request: Request, rule_id: str = Path(..., description="Rule id.")) -> None:
    """Delete an alert rule."""
    if not get_state(request.app).monitor.remove_alert_rule(rule_id):
        raise HTTPException(status_code=404, detail="rule not found")
    return None


@router.get(
    "/{alert_id}",
    response_model=Alert,
    responses={404: {"model": ErrorResponse}},
    summary="Get alert",
    operation_id="get_alert",
)
def get_alert(request: Request, alert_id: str = Path(..., description="Alert id.")) -> Alert:
    """Get an alert by id."""
    alert = get_state(request.app).monitor.get_alert(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="alert not found")
    return alert


@router.post(
    "/{alert_id}/resolve",
    response_model=Alert,
    responses={404: {"model": ErrorResponse}},
    summary="Resolve alert",
    description="Resolve an open alert. 404 when the alert does not exist or is already resolved.",
    operation_id="resolve_alert",
)
def resolve_alert(request: Request, alert_id: str = Path(..., description="Alert id.")) -> Alert:
    """Resolve an alert."""
    monitor = get_state(request.app).monitor
    if not monitor.resolve_alert(alert_id):
        raise HTTPException(status_code=404, detail="alert not found or already resolved")
    return monitor.get_alert(alert_id)
