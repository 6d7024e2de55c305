"""Monitoring core: in-process telemetry for the assessment service.

- recorder.py (raw samples + interval counters)
- aggregator.py (percentiles, throughput, error rate)
- alert_engine.py (threshold rules, cooldown, alert lifecycle)
- health_evaluator.py (pass/warn/fail checks + overall verdict)
- history.py (bounded snapshot history + archive loop)
- exporter.py (dashboard trends + Prometheus text)
- monitoring_service.py (facade guarding all of the above with one lock)
- instrumentation.py (begin/end request hooks)
"""

# Import side-effects are intentionally avoided here; modules are imported by routers/services as needed.
