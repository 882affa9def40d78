"""
Module ORM Registry (``sales_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before
``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility. Imported lazily by
``sales_kernel.db.engine.create_tables``; never imported at kernel load.
"""


def import_all_orm_models() -> None:
    """Import every ``sales_modules.*.orm`` module to register ORM models.

    This function is idempotent -- repeated calls are harmless.
    """
    import sales_modules.order.orm  # noqa: F401
