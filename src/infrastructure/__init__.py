"""
Infrastructure Layer
=====================

Technical infrastructure shared by the bounded contexts (database).
"""
