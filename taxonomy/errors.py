class TaxonomyError(Exception):
    """Base class for taxonomy problems."""


class GraphIntegrityError(TaxonomyError):
    """Malformed taxonomy input: cycle, dangling reference, bad containment."""


class UnknownNodeError(TaxonomyError, KeyError):
    """A queried id does not exist in the taxonomy."""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self):
        return f"unknown taxonomy node '{self.node_id}'"
