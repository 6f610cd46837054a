"""Domain errors raised by the service layer."""


class NotFoundError(ValueError):
    """A referenced record does not exist."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")


class RuleValidationError(ValueError):
    """A matching rule definition is invalid."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("; ".join(errors))


class DuplicateMatchError(ValueError):
    """A match already exists for the transaction/debt pair."""
