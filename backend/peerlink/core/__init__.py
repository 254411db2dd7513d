"""Core Layer — domain types, wire formats and pure rules, no IO.

Invariants:
    - No module in core/ imports from services/, api/ or infrastructure/
    - Functions take their inputs explicitly (clock and ids aside) and never touch the network

Design Decisions:
    - Functional core separated from imperative shell
"""
