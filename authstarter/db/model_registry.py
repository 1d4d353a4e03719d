"""
Import every model module here once so that Base.metadata is fully populated.

Add a single import line here whenever you create a new model module.
"""

from authstarter.db.base import Base  # the shared Declarative Base

# --- import all model modules (side-effect: tables register on Base.metadata)
from authstarter.models import user  # noqa: F401
from authstarter.models import session  # noqa: F401
from authstarter.models import verification  # noqa: F401
from authstarter.models import password_reset  # noqa: F401
from authstarter.models import login_attempt  # noqa: F401

# expose for Alembic
metadata = Base.metadata
