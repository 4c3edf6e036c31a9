"""
Fleet Kernel

Workflow core for leased vehicles and the weekly reports drivers file:
- Report lifecycle (draft -> submitted -> approved/rejected)
- Assignment request lifecycle (pending -> approved/rejected/withdrawn/expired)
- Conditional (compare-and-swap) status writes for race safety
- Mileage continuity derived from the report ledger
"""

__version__ = "0.1.0"
