"""Field operations engine: location fixes, visit sessions and entity onboarding."""

__version__ = "0.1.0"
