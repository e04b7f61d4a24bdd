"""
SLA Interfaces Layer
====================

FastAPI router for the SLA engine. Handlers translate HTTP payloads to DTOs
and delegate to the services held on `app.state.sla_services`.
"""

from sla.interfaces.controllers import sla_router

__all__ = ["sla_router"]
