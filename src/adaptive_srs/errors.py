"""Exceptions raised at the scheduler's boundaries."""


class SchedulerError(Exception):
    """Base class for scheduler failures surfaced to callers."""


class InvalidRatingError(SchedulerError, ValueError):
    def __init__(self, value):
        super().__init__(f"Unknown rating: {value!r}")
        self.value = value


class CardNotFoundError(SchedulerError):
    def __init__(self, card_id):
        super().__init__(f"Flashcard not found: {card_id}")
        self.card_id = card_id


class ConcurrentUpdateError(SchedulerError):
    """Another writer changed the record first. Re-read and retry."""

    retryable = True

    def __init__(self, kind: str, key):
        super().__init__(f"Concurrent update of {kind} {key}")
        self.kind = kind
        self.key = key


class InvalidSettingError(SchedulerError, ValueError):
    def __init__(self, name: str, value):
        super().__init__(f"Invalid value for {name}: {value!r}")
        self.name = name
        self.value = value
