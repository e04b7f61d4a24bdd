"""
Shared API layer: middleware and exception handlers.
"""
