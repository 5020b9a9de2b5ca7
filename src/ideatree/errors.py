"""Exceptions raised by ideatree stores and managers."""


class IdeaTreeError(Exception):
    """Base class for all ideatree errors."""


class NotFoundError(IdeaTreeError, LookupError):
    """An idea, branch, snapshot, node or conversation does not exist.

    Raised before any mutation when the missing entity is a precondition
    of a write.
    """

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class InvariantError(IdeaTreeError, ValueError):
    """An operation would break a structural rule (e.g. deleting the root branch)."""
