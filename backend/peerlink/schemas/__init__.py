"""Pydantic Schemas — request validation for the dashboard API.

Invariants:
    - Schemas validate at system boundary (operator input)
    - Wire documents (actor, WebFinger, activities) are plain dicts built in core/, not schemas

Design Decisions:
    - Federation payloads stay open-ended dicts: peers may send fields we do not model
"""
