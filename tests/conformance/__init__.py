"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the ledger and the ping-pong
contract. Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Value is neither created nor destroyed by contract calls
2. atomicity.py - A call either applies completely or leaves no trace
3. idempotency.py - Duplicate and stale submissions are never applied twice
4. temporal.py - Deadlines, time ordering and historical reconstruction

These tests use hypothesis for property-based testing.
"""
