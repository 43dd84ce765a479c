"""HTTP API for the StreamAudit dashboard."""
