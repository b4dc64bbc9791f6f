"""
Reconciler Kernel — the pure engine.

Components:
  reducer        — (state, action) → state  (pure, deterministic)
  filters        — (records, view) → visible slice, filter predicate
  notifications  — notification feed state ops (add, mark read, clear)
  dedup          — bounded recently-seen window

Nothing in the kernel performs IO; the dashboard services feed it.
"""

from reconciler.kernel.dedup import RecentWindow
from reconciler.kernel.filters import matches, query_params, visible, visible_slice
from reconciler.kernel.reducer import empty_state, find_record, reduce, replay
from reconciler.kernel.types import Action, ReduceResult, page_size

__all__ = [
    "Action",
    "ReduceResult",
    "RecentWindow",
    "empty_state",
    "find_record",
    "matches",
    "page_size",
    "query_params",
    "reduce",
    "replay",
    "visible",
    "visible_slice",
]
