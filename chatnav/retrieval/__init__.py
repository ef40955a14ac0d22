"""
App-data retrieval
"""

from .app_data import AppDataStore, InMemoryAppDataStore, AppEntity, parse_existence_question

__all__ = [
    'AppDataStore',
    'InMemoryAppDataStore',
    'AppEntity',
    'parse_existence_question'
]
