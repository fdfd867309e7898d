"""Library Catalog - Core Application Package

This package contains the core application modules including:
- API endpoints (api.py)
- Library management logic (library.py)
- CLI interface (main.py)
- Data models (book.py)
- Input sanitization (validators.py)
- Database layer (database.py)
"""

__version__ = "1.0.0"
