"""
Tests for the HTTP API.

Validates:
- The public operation surface over HTTP, caller taken from X-Principal
- Protocol rejections mapped to status codes with the reason string
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from wedlock import orchestrator
from wedlock.api.app import app, state
from wedlock.integrations.certificates import InMemoryCertificateRegistry
from wedlock.integrations.clock import DAY_SECONDS, ManualClock
from wedlock.ledger.service import EventJournal
from wedlock.protocol.errors import AuthorizationViolation
from wedlock.registry import WeddingRegistry

WEDDING_DAY = 10 * DAY_SECONDS
WEDDING_DATE = WEDDING_DAY + 15 * 3600


def as_principal(principal: str) -> dict[str, str]:
    return {"X-Principal": principal}


class TestApi:
    """End-to-end flows through the FastAPI app."""

    @pytest.fixture(autouse=True)
    def _client(self, tmp_path):
        self.clock = ManualClock(now=DAY_SECONDS)
        journal = EventJournal(f"sqlite:///{tmp_path / 'journal.db'}")
        journal.initialize()
        state.registry = WeddingRegistry(
            self.clock, InMemoryCertificateRegistry(), arbiters=["judge"], journal=journal
        )
        self.client = TestClient(app)
        yield
        state.registry = None

    def _engage(self):
        body = {"partner": "bob", "wedding_date": WEDDING_DATE}
        first = self.client.post("/api/engagements", json=body, headers=as_principal("alice"))
        body = {"partner": "alice", "wedding_date": WEDDING_DATE}
        second = self.client.post("/api/engagements", json=body, headers=as_principal("bob"))
        return first, second

    def test_health(self):
        resp = self.client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "arbiters": 1, "journal": True}

    def test_engagement(self):
        first, second = self._engage()
        assert first.json() == {"engaged": False, "record": None}
        assert second.json()["engaged"] is True

        resp = self.client.get("/api/engagements/alice")
        assert resp.status_code == 200
        assert resp.json()["partner2"] == "bob"
        assert self.client.get("/api/lifecycle/bob").json()["status"] == "engaged"

    def test_unknown_user_is_404(self):
        assert self.client.get("/api/engagements/nobody").status_code == 404

    def test_missing_principal_header(self):
        resp = self.client.post("/api/engagements", json={"partner": "bob", "wedding_date": 1})
        assert resp.status_code == 422

    def test_self_engagement_is_422(self):
        resp = self.client.post(
            "/api/engagements",
            json={"partner": "alice", "wedding_date": WEDDING_DATE},
            headers=as_principal("alice"),
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "InvariantViolation"

    def test_past_wedding_date_is_409(self):
        resp = self.client.post(
            "/api/engagements",
            json={"partner": "bob", "wedding_date": 0},
            headers=as_principal("alice"),
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "TemporalViolation"
        assert "future" in resp.json()["detail"]

    def test_change_date_and_revoke(self):
        self._engage()
        resp = self.client.put(
            "/api/engagements/wedding-date",
            json={"wedding_date": WEDDING_DATE + DAY_SECONDS},
            headers=as_principal("bob"),
        )
        assert resp.json()["wedding_date"] == WEDDING_DATE + DAY_SECONDS

        resp = self.client.delete("/api/engagements", headers=as_principal("alice"))
        assert resp.json()["revoked"] is True
        assert self.client.get("/api/engagements/bob").status_code == 404

    def test_guest_list_marriage_and_divorce(self):
        self._engage()
        resp = self.client.post(
            "/api/guest-list", json={"guests": ["g1", "g2"]}, headers=as_principal("alice")
        )
        assert resp.json()["partner1_confirmed"] is True
        self.client.post("/api/guest-list/confirm", headers=as_principal("bob"))
        assert self.client.get("/api/guest-list/alice").json() == {"guests": ["g1", "g2"]}

        self.clock.set(WEDDING_DAY)
        veto = self.client.post("/api/veto", json={"partner": "alice"}, headers=as_principal("g1"))
        assert veto.json()["votes_cast"] == 1
        assert veto.json()["dissolved"] is False

        assert self.client.post("/api/marriage", headers=as_principal("alice")).json()["married"] is False
        married = self.client.post("/api/marriage", headers=as_principal("bob")).json()
        assert married["married"] is True
        assert married["record"]["certificate_id_p1"] == 1

        self.client.post("/api/divorce", json={"partner": "bob"}, headers=as_principal("alice"))
        result = self.client.post(
            "/api/divorce", json={"partner": "bob"}, headers=as_principal("judge")
        ).json()
        assert result["dissolved"] is True

        journal = self.client.get("/api/journal/bob/alice").json()
        assert journal["entries"][-1]["event_type"] == "divorced"

    def test_unconfirmed_guest_list_is_409(self):
        self._engage()
        resp = self.client.get("/api/guest-list/alice")
        assert resp.status_code == 409
        assert resp.json()["error"] == "PreconditionViolation"

    def test_registry_not_initialized(self):
        state.registry = None
        resp = self.client.get("/api/engagements/alice")
        assert resp.status_code == 503

    def test_authorization_violation_is_403(self, monkeypatch):
        def refuse(caller, partner):
            raise AuthorizationViolation(f"{caller} may not act on {partner}")

        monkeypatch.setattr(state.registry, "divorce", refuse)
        resp = self.client.post("/api/divorce", json={"partner": "bob"}, headers=as_principal("eve"))
        assert resp.status_code == 403
        assert resp.json() == {"detail": "eve may not act on bob", "error": "AuthorizationViolation"}

    def test_lifespan_closes_registry_it_built(self, monkeypatch):
        closed = []

        class ClosingRegistry(InMemoryCertificateRegistry):
            def close(self):
                closed.append(True)

        built = WeddingRegistry(self.clock, ClosingRegistry(), arbiters=["judge"])
        monkeypatch.setattr(orchestrator, "build_registry", lambda: built)
        state.registry = None

        with TestClient(app) as client:
            assert state.registry is built
            assert client.get("/health").json()["arbiters"] == 1
            assert closed == []
        assert closed == [True]
        assert state.registry is None

    def test_lifespan_leaves_injected_registry_open(self):
        injected = state.registry
        with TestClient(app):
            pass
        assert state.registry is injected
