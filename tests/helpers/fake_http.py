import aiohttp

class FakeResponse:
    def __init__(self, status=200, body="ok"):
        self.status = status
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """
    Stand-in for aiohttp.ClientSession.post. Each call pops the next scripted
    outcome: an int status, a (status, body) tuple, or an exception to raise.
    """
    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []
        self.closed = False

    def post(self, url, json=None):
        self.calls.append((url, json))
        outcome = self.outcomes.pop(0) if self.outcomes else 200
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, tuple):
            return FakeResponse(*outcome)
        return FakeResponse(status=outcome)

    async def close(self):
        self.closed = True


def client_error(msg="connection reset"):
    return aiohttp.ClientConnectionError(msg)
