class ObjectNotFoundError(Exception):
    """Raised when a logical path does not resolve to a stored blob."""

    def __init__(self, object_path: str = "") -> None:
        self.object_path = object_path
        super().__init__(f"Object not found: {object_path}" if object_path else "Object not found")
