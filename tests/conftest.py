import pytest


class ScriptedRandom:
    """Hands out prepared backoff draws in order."""

    def __init__(self, draws):
        self.draws = list(draws)
        self.calls = []

    def randint(self, a, b):
        self.calls.append((a, b))
        value = self.draws.pop(0)
        assert a <= value <= b, f"scripted draw {value} outside [{a}, {b}]"
        return value


@pytest.fixture
def scripted_rng():
    return ScriptedRandom
