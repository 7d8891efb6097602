"""
MarkDash: habit and checklist boards with daily logs and notifications.

This package provides a FastAPI application over an ordered key-value store
with in-memory, SQL and Redis backends.
"""
