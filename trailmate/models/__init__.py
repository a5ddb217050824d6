from .base import Base

__all__ = ["Base"]


def import_all_models() -> None:
    """Register every ORM model with ``Base.metadata``."""
    from trailmate.features.quota import models as _quota  # noqa: F401
    from trailmate.features.activities import models as _activities  # noqa: F401
