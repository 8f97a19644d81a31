from notebook_bridge.core.database import Base
from notebook_bridge.models.notebook import Notebook

__all__ = ["Base", "Notebook"]
