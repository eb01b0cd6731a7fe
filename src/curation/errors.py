class CurationError(Exception):
    """Base class for curation failures."""


class ItemNotFoundError(CurationError, LookupError):
    def __init__(self, item_id: str):
        super().__init__(f"Curated image not found: {item_id}")
        self.item_id = item_id


class InvalidTransitionError(CurationError):
    """Status compare-and-swap found the record in a status it may not leave."""

    def __init__(self, item_id: str, current, target):
        super().__init__(
            f"Cannot move {item_id} from {getattr(current, 'value', current)} "
            f"to {getattr(target, 'value', target)}"
        )
        self.item_id = item_id
        self.current = current
        self.target = target


class ClassificationError(CurationError, RuntimeError):
    """A vision collaborator failed to produce a usable result."""
