class StreakError(Exception):
    pass


class StreakValidationError(StreakError, ValueError):
    pass


class InvalidConfigurationError(StreakValidationError):
    pass


class InvalidStreakIdError(StreakValidationError):
    pass


class InvalidEventIdError(StreakValidationError):
    pass


class InvalidTimestampError(StreakValidationError):
    pass


class InvalidTimezoneError(StreakValidationError):
    pass


class InvalidMetadataError(StreakValidationError):
    pass


class InvalidFreezeError(StreakValidationError):
    pass


class NotLoggedInError(StreakError):
    pass


class FreezeNotFoundError(StreakError):
    pass


class FreezeAlreadyUsedError(StreakError):
    pass


class FreezeNotAvailableError(StreakError):
    pass


class SnapshotCacheError(StreakError):
    pass


class MetadataDecodeError(StreakError):
    pass


class SnapshotDecodeError(StreakError):
    pass
