from .database import Database
from .sql_store import SqlCardStore
from .store import CardStore, InMemoryCardStore, StateFilter

__all__ = [
    "CardStore",
    "Database",
    "InMemoryCardStore",
    "SqlCardStore",
    "StateFilter",
]
