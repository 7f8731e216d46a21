from .config import Base, Database

__all__ = ["Base", "Database"]
