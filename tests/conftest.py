import json
import os

import httpx
import pytest
from fastapi.testclient import TestClient

# Set testing environment before the app reads its settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite:///./careportal_test.db"

from careportal.main import app
from careportal.api.deps import get_backend_transport
from careportal.core.config import settings
from careportal.core.database import Base, engine

BACKEND_PREFIX = httpx.URL(settings.BACKEND_API_URL).path.rstrip("/")

class FakeBackend:
    """In-memory stand-in for the clinic REST API behind an httpx.MockTransport.

    Routes map ``(method, path)`` to a JSON body, a ``(status, body)`` pair,
    a callable taking the request, or (via ``add_sequence``) a list of
    pairs answered in order.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, response=None, status=200):
        if callable(response):
            self.routes[(method, path)] = response
        else:
            self.routes[(method, path)] = (status, response)

    def add_sequence(self, method, path, responses):
        """Answer with each ``(status, body)`` in turn, repeating the last one."""
        self.routes[(method, path)] = list(responses)

    def requests_to(self, method, path):
        return [r for r in self.calls if r.method == method and self.path_of(r) == path]

    @staticmethod
    def path_of(request):
        return request.url.path[len(BACKEND_PREFIX):]

    @staticmethod
    def body_of(request):
        return json.loads(request.content) if request.content else None

    def handler(self, request):
        self.calls.append(request)
        route = self.routes.get((request.method, self.path_of(request)))
        if route is None:
            return httpx.Response(404, json={"error": "Not found"})
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if callable(route):
            route = route(request)
        if isinstance(route, httpx.Response):
            return route
        status, body = route
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)

@pytest.fixture(scope="function")
def test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def backend():
    fake = FakeBackend()
    app.dependency_overrides[get_backend_transport] = lambda: fake.transport
    yield fake
    app.dependency_overrides.pop(get_backend_transport, None)

@pytest.fixture
def client(test_db, backend):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

PATIENT = {"id": 7, "email": "pat@example.com", "name": "Pat Doe", "userType": "patient"}
DOCTOR = {"id": 3, "email": "doc@example.com", "name": "Dr. Grey", "userType": "doctor", "doctorStatus": "approved"}
ADMIN = {"id": 1, "email": "admin@example.com", "name": "Admin", "userType": "admin"}

def sign_in(client, backend, user, access_token="access-1", refresh_token="refresh-1"):
    """Log ``user`` in through the portal and return its auth headers."""
    backend.add("POST", "/auth/login", {
        "user": user,
        "accessToken": access_token,
        "refreshToken": refresh_token,
    })
    response = client.post("/api/v1/auth/login", json={"email": user["email"], "password": "secret"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['session_token']}"}
