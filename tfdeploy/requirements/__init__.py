from .aggregate import Aggregate
from .criteria import Criteria

__all__ = ["Aggregate", "Criteria"]
