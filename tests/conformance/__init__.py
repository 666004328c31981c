"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending pool.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry accounting across pool operations
2. atomicity.py - Failed operations leave no trace
3. idempotency.py - Duplicate execution handling
4. determinism.py - Reproducible behavior and replay
5. share_accounting.py - Share supply, entitlement bounds, no value extraction
6. rate_curve_properties.py - Monotonic, continuous rate curve
7. serialization.py - Stale pending transactions refused, concurrent handles lose no update

These tests use hypothesis for property-based testing.
"""
