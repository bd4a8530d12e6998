"""
Persistence layer: ORM models and engine/session management.
"""
