from .app import SafishaApp
from .config import Settings

__all__ = ["SafishaApp", "Settings"]
