"""
Setup script for html-pdf-service.

Allows development installation with `pip install -e .`
After installing, fetch the browser build with `playwright install chromium`.
"""

from setuptools import setup, find_packages

setup(
    name="html-pdf-service",
    version="0.1.0",
    description="Stateless HTML to PDF conversion service using Playwright/Chromium",
    packages=find_packages(include=["html_pdf_service", "html_pdf_service.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.100",
        "uvicorn>=0.23",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "playwright>=1.40",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "html-pdf-service=html_pdf_service.main:main",
        ],
    },
)
