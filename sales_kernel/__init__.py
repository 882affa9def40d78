"""
Sales Kernel - order computation core

Shared foundations for the sales-order computation engines:
- Catalog and order-aggregate records
- Typed exceptions with stable codes
- Structured JSON logging with request-scoped context
- Explicit capability flags instead of global module lookups
- SQLAlchemy plumbing for the persistence glue
"""

__version__ = "0.1.0"
