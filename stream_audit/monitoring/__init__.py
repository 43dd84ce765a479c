"""Prometheus instrumentation for StreamAudit."""
