"""Document storage and access control for Mediator Pro."""

__version__ = "0.1.0"
