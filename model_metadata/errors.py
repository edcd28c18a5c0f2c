"""Exceptions raised across the metadata pipeline."""


class ResolutionError(Exception):
    """An image reference could not be parsed or the image could not be opened."""


class SchemaNormalizationError(ValueError):
    """A persisted metadata record matched none of the known document shapes."""


class ConfigurationError(ValueError):
    """Invalid run configuration: models index, extraction settings, CLI arguments."""
