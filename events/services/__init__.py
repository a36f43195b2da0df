from .inventory import CatalogEntry, catalog_snapshot, release_tickets, reserve_tickets

__all__ = [
    "CatalogEntry",
    "catalog_snapshot",
    "reserve_tickets",
    "release_tickets",
]
