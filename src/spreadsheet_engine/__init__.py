"""Spreadsheet Engine - cell grid, formulas and transactional persistence."""

from spreadsheet_engine.api import app, create_app

__all__ = ["app", "create_app"]
__version__ = "0.1.0"


def main() -> None:
    """Run the FastAPI server using uvicorn."""
    import uvicorn

    from spreadsheet_engine.config import settings

    uvicorn.run(
        "spreadsheet_engine.api:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
    )
