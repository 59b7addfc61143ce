# This file ensures that all models are imported when Base.metadata is accessed.
# Alembic's env.py and the test fixtures can then create every table from Base.metadata.

from .rvu_code_db import RVUCodeModel
from .visits_db import VisitModel, VisitProcedureModel
from .favorites_db import FavoriteModel

__all__ = [
    "RVUCodeModel",
    "VisitModel",
    "VisitProcedureModel",
    "FavoriteModel",
]
