"""
Infrastructure Layer
=====================

Low-level technical concerns shared across the application:
- Structured logging setup
"""
