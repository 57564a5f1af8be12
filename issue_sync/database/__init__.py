# Database Package
from .connection import DatabaseConnection, get_db

__all__ = ['DatabaseConnection', 'get_db']
