"""
Incentive Kernel - compensation rule engine core

Shared foundation for payout calculation:
- Immutable plan, fact, and result domain types
- Typed exceptions with machine-readable codes
- Structured JSON logging with request-scoped context
- Deterministic hashing for reproducible result fingerprints
- SQLAlchemy persistence models for the reference data store
"""

__version__ = "0.1.0"
