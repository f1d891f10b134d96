"""
HTML to PDF Service entrypoint - runs uvicorn server.
"""

import uvicorn

from html_pdf_service.config import get_settings


def main() -> None:
    """Run the HTML to PDF server."""
    settings = get_settings()

    print(f"Starting HTML to PDF service on http://{settings.host}:{settings.port}")
    print(f"Docs: http://{settings.host}:{settings.port}/docs")

    uvicorn.run(
        "html_pdf_service.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
