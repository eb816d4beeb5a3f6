# Import all providers to trigger registration with the registry.
from palmares.providers import ffds  # noqa: F401
