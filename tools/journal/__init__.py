from .query import JournalError, count_matches, list_boots

__all__ = ["JournalError", "count_matches", "list_boots"]
