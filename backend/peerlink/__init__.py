"""PeerLink — federated peer discovery, health monitoring and signed activity delivery.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)
"""
