"""Domain layer for ledgerflow.

Services are imported from their modules (``ledgerflow.domain.ingest`` and so
on); the package itself stays empty so the database layer can import
``ledgerflow.domain.entities`` without pulling in the services.
"""
