"""Exceptions raised by the collision analysis pipeline."""


class CollisionDataError(ValueError):
    """Input data could not be interpreted."""


class DateTimeParseError(CollisionDataError):
    """CRASH_DATE / CRASH_TIME could not be combined into a timestamp."""


class ZipCodeParseError(CollisionDataError):
    """A zip code (or the zip suffix of a census NAME) is not an integer."""


class InvalidContingencyTable(CollisionDataError):
    """A cross table cannot be used for a chi-squared test."""


class DownloadError(CollisionDataError):
    """The collision CSV could not be downloaded."""
