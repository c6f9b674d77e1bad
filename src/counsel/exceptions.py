"""
Exception types raised by the resolution engine.

Resolution itself never raises for bad queries; these cover the
data-loading paths where a caller must know the input was rejected.
"""


class CounselError(Exception):
    """Base class for counsel errors."""

    pass


class ReferenceDataError(CounselError):
    """Raised when reference data cannot be loaded into a store."""

    pass


class DomainTableError(CounselError):
    """Raised when OCR, synonym or location tables are invalid."""

    pass
