"""PDF storage collaborator."""

from .pdf_library import PdfLibrary, PdfRecord

__all__ = ["PdfLibrary", "PdfRecord"]
