"""
Domain services.

- schema: catalog readers and the schema registry
- crud: condition builder, foreign-key enricher, table executor
- audit: audit recorder, chain verification and queries
- export: CSV export
- catalog_nav: table categories and enum options
"""
