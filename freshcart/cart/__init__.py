from .models import CartEntry, entry_from_row
from .sessions import CartSessions
from .store import CartStore

__all__ = ["CartEntry", "CartSessions", "CartStore", "entry_from_row"]
