"""Services Layer — delivery engine, coordinator actor, inbox processing and runtime wiring.

Invariants:
    - Mutable network state is owned by exactly one actor (coordinator or federator)
    - Components receive their collaborators by injection from services/runtime.py

Design Decisions:
    - asyncio mailbox actors over shared state behind locks (ADR: single writer)
"""
