from highlow.tests.mocks.connection import MockConnection

__all__ = ["MockConnection"]
