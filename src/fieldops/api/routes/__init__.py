"""Route group exports."""

from . import health, location, nearby, notifications, onboarding, visits

__all__ = ["health", "location", "nearby", "notifications", "onboarding", "visits"]
