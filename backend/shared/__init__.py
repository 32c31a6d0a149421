"""
Shared module for infrastructure used by the REST API and the CLI.

STRUCTURE:
- shared.security: Principal resolution
  - auth.py: JWT verification, Principal, RequireRole

- shared.infrastructure: Database and request correlation
  - db.py: SQLAlchemy engine/sessions, translate_db_error()
  - correlation.py: X-Request-ID middleware and log filter

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Roles, AuditAction, internal field names

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - validators.py: Identifier checks, diacritic folding
  - schemas.py: Shared Pydantic schemas

IMPORT EXAMPLES:
    from shared.security.auth import Principal, RequireRole
    from shared.infrastructure.db import get_db, translate_db_error
    from shared.config.settings import settings
    from shared.config.constants import Roles, AuditAction
    from shared.utils.exceptions import TableNotFoundError, ValidationError
"""
