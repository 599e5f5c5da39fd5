"""
Clutch Backend — Services Layer
=================================

Service Inventory:
    - filters / pagination:  query-string parsing into Filter clauses and pages
    - store_base:            DocumentStore interface shared by both backends
    - memory_store:          in-process store (tests, STORE_BACKEND=memory)
    - sql_store:             SQLAlchemy store over the `records` table
    - crud:                  ResourceSchema + CrudEngine, the generic lifecycle
    - ownership / stats:     owner-or-admin checks and aggregate overviews
    - resources/:            one ResourceSchema per resource plus its extra operations
    - feature_flags:         FeatureFlagService + in-memory implementation
    - email_service:         Jinja2 templates, EmailProvider, delivery records
"""
