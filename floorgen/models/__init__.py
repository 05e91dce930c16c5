# Model package init
from .saved_layout import SavedLayout  # noqa: F401 re-export

__all__ = ["SavedLayout"]
