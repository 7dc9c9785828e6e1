"""
txledger - Source Package

An append-only transaction ledger whose account balances are always
derivable by replaying the durable log from a fixed genesis snapshot.

DESIGN PRINCIPLES:
1. The log is the source of truth; balances are a rebuildable cache
2. Validate first, then apply (never apply-then-rollback)
3. Nothing leaves the mempool until its bytes are on disk
4. Startup fails loudly on any bad record
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "txledger maintainers"
