"""
Router initialization module.

Exports all API routers for the triage context backend.
"""
from triagecore.server.routers import system, tools

__all__ = [
    "system",
    "tools",
]
