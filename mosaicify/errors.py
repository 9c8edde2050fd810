"""
Exception types raised by Mosaicify.
"""


class MosaicifyError(Exception):
    """Base class for all Mosaicify errors."""


class LoadError(MosaicifyError):
    """The source image could not be acquired or decoded."""


class ExportError(MosaicifyError):
    """The edited raster could not be encoded or saved."""
