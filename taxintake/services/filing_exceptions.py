"""
Exceptions raised while loading filings and producing filled PDFs.

Configuration errors map to 5xx, lookup errors to 4xx. Fields that cannot be
resolved against the template are never raised; they go to the fill report.
"""


class PdfGenerationError(Exception):
    """Base exception for PDF generation."""
    status_code = 500


class ConfigurationError(PdfGenerationError):
    """Server-side setup is incomplete (templates, mapping tables)."""
    status_code = 500


class TemplateNotFoundError(ConfigurationError):
    pass


class TemplateLoadError(ConfigurationError):
    """Template bytes are not a readable fillable PDF."""
    pass


class MappingTableMissingError(ConfigurationError):
    pass


class FilingNotFoundError(PdfGenerationError):
    status_code = 404


class UnsupportedFormError(PdfGenerationError):
    """Filing exists but this endpoint does not render its form."""
    status_code = 400
