from .main import prism
from . import hashing, verify  # noqa: F401  (register commands)

__all__ = ["prism"]
