"""
Sales modules -- thin ERP glue around the pure sales engines.

Each subpackage owns persistence (ORM models, repository), in-memory
collaborator implementations and a service that holds the transaction
boundary. Computation lives in ``sales_engines``.
"""
