"""StreamAudit: live queue, audit trail and metrics API for the payment pipeline dashboard."""

__version__ = "0.1.0"
