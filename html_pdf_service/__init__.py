"""
HTML to PDF Service - stateless HTML to PDF conversion.

Each request launches its own headless Chromium through Playwright,
renders the submitted HTML to an A4 PDF and tears the browser down
before the response is returned.
"""

__version__ = "0.1.0"
