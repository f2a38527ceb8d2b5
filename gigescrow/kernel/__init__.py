"""
Kernel Layer

Foundational pieces every other layer builds on:
- Ledger snapshots and transient submission records (models)
- Ledger boundary: reads, transaction payloads, execution (ledger)
- Ledger events returned with confirmed transactions (events)
- Actor addresses from the identity provider (identity)

Invariant: the ledger is authoritative. Nothing in the kernel mutates a
job snapshot; state only moves through confirmed transactions.
"""
