"""
SLA Engine Module
=================

Bounded Context for Service Level Agreement tracking shared by the
support, warranty and jobs domains.

Responsibilities:
- Resolve the SLA configuration that applies to an entity
- Compute response / resolution due dates in business or wall-clock time
- Track the lifecycle of each entity's SLA (pause, resume, respond, resolve)
- Detect at-risk and breached clocks exactly once and escalate
- Manage schedules, holidays and configurations per organization
- Report SLA metrics
"""

__version__ = "1.0.0"
