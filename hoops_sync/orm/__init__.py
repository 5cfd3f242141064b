"""ORM models for the hoops-sync store.

Import models from their modules or through ``hoops_sync.db.db_models``:
    from hoops_sync.orm.sports import Game, Team
    from hoops_sync.db import db_models
"""

from .base import Base

__all__ = ["Base"]
