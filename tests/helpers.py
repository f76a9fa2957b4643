"""Deterministic collaborators shared by the test modules."""
from casino_core.exceptions import LocationBlocked, RNGUnavailable
from casino_core.models.dc_models import LocationModel


class ScriptedRNG:
    """Returns scripted values first, then a fixed rule.

    pick="max" leaves a Fisher-Yates shuffle as the identity, so cards are
    dealt from the end of the ordered deck (spades first: A, K, Q, J, ...).
    pick="min" rotates the deck left by one, so the first card dealt is the
    2 of hearts, followed by the spades from the Ace down.
    """

    source = "secure"
    secure = True

    def __init__(self, ints=(), units=(), pick="min", unit=0.25):
        self.ints = list(ints)
        self.units = list(units)
        self.pick = pick
        self.unit = unit

    def random_int(self, min_value, max_value):
        if self.ints:
            value = self.ints.pop(0)
            if not min_value <= value <= max_value:
                raise AssertionError(f"scripted {value} outside [{min_value}, {max_value}]")
            return value
        return min_value if self.pick == "min" else max_value

    def random_unit(self):
        return self.units.pop(0) if self.units else self.unit

    def audit_seed(self):
        return "ab" * 16


class BrokenRNG:
    source = "secure"
    secure = True

    def random_int(self, min_value, max_value):
        raise RNGUnavailable("entropy source is gone")

    def random_unit(self):
        raise RNGUnavailable("entropy source is gone")

    def audit_seed(self):
        raise RNGUnavailable("entropy source is gone")


class StaticGate:
    def __init__(self, allowed=True, reason=None):
        self.allowed = allowed
        self.reason = reason
        self.calls = 0
        self.client_ips = []

    async def verify_location(self, client_ip=None):
        self.calls += 1
        self.client_ips.append(client_ip)
        return LocationModel(allowed=self.allowed, reason=self.reason)

    async def require_allowed(self, client_ip=None):
        result = await self.verify_location(client_ip)
        if not result.allowed:
            raise LocationBlocked(result.reason)
        return result
