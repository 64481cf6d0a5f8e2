"""Test data factories for PlantLife."""

from tests.factories.user_factory import UserFactory

__all__ = ["UserFactory"]
