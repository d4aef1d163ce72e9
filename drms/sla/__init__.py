"""
SLA Monitoring Module
=====================

Bounded Context for Service Level Agreement monitoring of repair cases.

Responsibilities:
- Resolve the SLA configuration that applies to each open case
- Evaluate response and resolution clocks (on_track / at_risk / breached)
- Calculate breach penalties
- Fire escalation rules: escalation log, Slack, workflow service
- Expose manual run and status routes for the scheduled job
"""

__version__ = "1.0.0"
