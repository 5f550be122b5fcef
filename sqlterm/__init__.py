"""SQLTerm: a terminal SQL client.

SQLTerm provides:
- One live connection per session with reachability, port and login checks
- Non-blocking query execution with cancellation and supersession
- Normalized, display-stable result sets
- A lazily expanded schema browser
- Query history and CSV, JSON and INSERT exports
- YAML-based configuration
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from sqlterm.exceptions import SQLTermError, ConfigurationError, DatabaseError
from sqlterm.session import QuerySession

__all__ = [
    "__version__",
    "SQLTermError",
    "ConfigurationError",
    "DatabaseError",
    "QuerySession",
]
