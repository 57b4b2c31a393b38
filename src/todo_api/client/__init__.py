"""
Client-side state for the Todo API: an HTTP client, the todo and category
stores, staged deletion with undo and derived view helpers.
"""

from .api import ApiClient, ApiError  # noqa: F401
from .deletion import DeletionQueue, DeletionState, InvalidTransition, StagedDeletion  # noqa: F401
from .store import CategoriesStore, Store, TodoFilters, TodosStore  # noqa: F401
