"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the withdrawal ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Custody, bucket and supply invariants under arbitrary workloads
2. atomicity.py - A failed operation changes nothing
3. idempotency.py - Duplicate execution handling
4. determinism.py - Same workload, same ledger

These tests use hypothesis for property-based testing; workloads come from
operations.py.
"""
