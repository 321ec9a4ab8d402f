"""Services for the spreadsheet engine.

- grid.py: the rectangular cell grid and its edits
- formula_evaluator.py: arithmetic formula evaluation
- change_notifier.py: per-cell change fan-out
- concurrency.py: the exclusive section around grid access
- persistence.py: the SQLAlchemy cell store
- file_operations.py: JSON export and import
- spreadsheet_service.py: the async facade used by the API
"""
