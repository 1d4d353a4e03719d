# authstarter/db/base.py
from sqlalchemy.orm import DeclarativeBase

# Single Declarative Base used by ALL models.
# Model modules are imported in authstarter/db/model_registry.py, not here.
class Base(DeclarativeBase):
    pass
