"""
Test suite for the credit ledger core.

- Ledger engine and operation executor semantics
- Ledger stores (in-memory, Supabase RPC mapping)
- Stripe webhook handling
- Billing HTTP API
"""
