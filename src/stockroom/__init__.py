"""
Stockroom invoice import package.

The package turns parsed vendor invoices into inventory drafts, matches embedded thumbnails to
line items, and finalizes item photos and receipt attachments in the background once the
records exist.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
