"""API Layer — FastAPI routes and error handlers.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - All endpoints return structured JSON (or SSE for the event stream)

Design Decisions:
    - Thin routes delegate to the runtime's services
"""
