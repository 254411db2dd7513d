"""Infrastructure Layer — outbound HTTP, key material, in-memory stores and logging.

Invariants:
    - Infrastructure may import core/ types and rules, never services/ or api/
    - Every outbound call carries a bounded timeout and maps transport errors to typed failures

Design Decisions:
    - Thin wrappers over raw clients (httpx, cryptography) so protocol code stays pure
"""
