"""
Registro REST API: dynamic table CRUD with schema introspection and audit.
"""
