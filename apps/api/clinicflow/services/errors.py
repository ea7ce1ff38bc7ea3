"""Exceptions shared across services.

Routers translate these: NotFoundError -> 404, other ValueErrors -> 422.
"""


class NotFoundError(ValueError):
    """A referenced row does not exist in the caller's organization."""

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class InvalidStateError(ValueError):
    """The row exists but its current status does not allow the operation."""
