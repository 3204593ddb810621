"""Identity layer exceptions."""


class IdentitySchemaError(RuntimeError):
    """Raised when the database holds an incompatible identity schema."""
