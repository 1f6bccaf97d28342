"""Scripted JSON-RPC ledger node for httpx.MockTransport."""

import json

import httpx


class FakeNode:
    """Scripted JSON-RPC node. Each method pops its next response."""

    def __init__(self, **scripts):
        self.scripts = {method: list(responses) for method, responses in scripts.items()}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request, body))

        response = self.scripts[body["method"]].pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **response})

    def methods(self):
        return [body["method"] for _, body in self.requests]
