# Import all handlers so they register themselves.
from . import analytics_summary  # noqa: F401
