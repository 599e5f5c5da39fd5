"""
Clutch Backend — Application Package
======================================

Layered the same way throughout:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← parse request, wrap envelope
    ├─────────────────────────────────────┤
    │  Services (CrudEngine + resources)  │  ← validation, ownership, rules
    ├─────────────────────────────────────┤
    │     DocumentStore (memory | SQL)    │  ← filters, sort, aggregates
    ├─────────────────────────────────────┤
    │  Models & Schemas (records table,   │
    │  response envelopes)                │
    └─────────────────────────────────────┘

A new resource is one ResourceSchema in clutch.services.resources; the
generic router and engine give it list/get/create/update/status/delete/stats.
"""

__version__ = "1.0.0"
