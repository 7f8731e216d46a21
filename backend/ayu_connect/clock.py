from datetime import datetime, timezone


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    def now(self):
        return utcnow()


class FrozenClock:
    """Clock that only moves when told to. Used by tests and scripted demos."""

    def __init__(self, start=None):
        self.current = start or utcnow()

    def now(self):
        return self.current

    def advance(self, delta):
        self.current = self.current + delta
        return self.current
