"""
Repository package for data access layers.

The catalog and commerce factories return in-memory implementations unless an
override is configured. Set `CATALOG_REPOSITORY_IMPL` or
`COMMERCE_REPOSITORY_IMPL` to a dotted path like:

    streampass.repositories.catalog:SqlCatalogRepository

and make sure the class implements the protocol in the matching module.
"""
