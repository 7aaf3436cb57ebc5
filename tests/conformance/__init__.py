"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the leveraged vault.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Failed vault operations change nothing
2. conservation.py - Double-entry balances and share supply stay consistent
3. round_trip.py - Deposit/redeem round trips and pro-rata exits
4. idempotency.py - Rebalancing an on-target vault does nothing
5. determinism.py - Identical inputs give identical vault histories

These tests use hypothesis for property-based testing.
"""
