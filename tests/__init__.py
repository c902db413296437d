"""
dynaglue Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Operation and transaction tests against the in-memory backend
- e2e/: Tests against a real DynamoDB endpoint (DynamoDB Local)
"""
