"""
Tests for Flask API endpoints.

Integration tests that validate the REST API returns correct status
codes, JSON structure and the images of the synthetic Oracle the app
fixture is built on.
"""

import math

import pytest

from kerrp2p.services import ServiceRegistry
from kerrp2p.services.imaging import ImagingService
from synthetic_oracles import PARAMS_JSON, PHI_O, ROOT_LGD, ROOT_RC, THETA_O

GRID = [i / 20 for i in range(21)]


def point(rc, log_abs_d):
    return dict(PARAMS_JSON, rc=rc, log_abs_d=log_abs_d)


class TestServicesEndpoint:

    def test_list_services(self, client):
        resp = client.get("/api/services")
        assert resp.status_code == 200
        data = resp.get_json()
        assert [s["id"] for s in data] == ["imaging"]
        assert "POST /api/kerr/sweep" in data[0]["endpoints"]

    def test_listed_endpoints_are_mounted(self, app):
        rules = {(method, rule.rule) for rule in app.url_map.iter_rules()
                 for method in rule.methods}
        for entry in ImagingService.endpoints:
            method, path = entry.split(" ")
            assert (method, path) in rules

    def test_duplicate_registration_rejected(self, engine):
        registry = ServiceRegistry()
        registry.register(ImagingService(engine))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(ImagingService(engine))
        assert len(registry) == 1

    def test_root(self, client):
        data = client.get("/").get_json()
        assert data["name"] == "kerrp2p"
        assert data["version"] == "0.1.0"


class TestStatusesEndpoint:

    def test_statuses(self, client):
        data = client.get("/api/kerr/statuses").get_json()
        assert "NORMAL" in data["statuses"]
        assert "CONFINED" in data["statuses"]
        assert data["precisions"] == ["float64", "longdouble"]
        assert data["engine"]["max_workers"] == 2


class TestEvaluateEndpoint:

    def test_evaluate(self, client):
        resp = client.post("/api/kerr/evaluate",
                           json={"params": point(ROOT_RC, ROOT_LGD)})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "NORMAL"
        assert data["theta_f"] == pytest.approx(THETA_O)
        assert data["lambda"] == 1.0

    def test_longdouble(self, client):
        resp = client.post("/api/kerr/evaluate", json={
            "params": point(0.3, 0.2), "precision": "longdouble"})
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "NORMAL"

    def test_missing_body(self, client):
        resp = client.post("/api/kerr/evaluate")
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_missing_params(self, client):
        resp = client.post("/api/kerr/evaluate", json={"precision": "float64"})
        assert resp.status_code == 400
        assert "params must be a JSON object" in resp.get_json()["error"]

    def test_unknown_precision(self, client):
        resp = client.post("/api/kerr/evaluate", json={
            "params": point(0.3, 0.2), "precision": "float16"})
        assert resp.status_code == 400
        assert "Unknown precision" in resp.get_json()["error"]


class TestEvaluateBatchEndpoint:

    def test_order_preserved(self, client):
        rcs = [0.9, 0.1, 0.5, 0.3, 0.7]
        resp = client.post("/api/kerr/evaluate-batch", json={
            "params_list": [point(rc, 0.2) for rc in rcs]})
        assert resp.status_code == 200
        results = resp.get_json()["results"]
        assert [r["rc"] for r in results] == pytest.approx(rcs)

    def test_bad_entry_reports_index(self, client):
        resp = client.post("/api/kerr/evaluate-batch", json={
            "params_list": [point(0.1, 0.2), {"a": 0.5}]})
        assert resp.status_code == 400
        assert resp.get_json()["error"].startswith("params_list[1]")

    def test_empty_list(self, client):
        resp = client.post("/api/kerr/evaluate-batch", json={"params_list": []})
        assert resp.status_code == 400


class TestFindRootEndpoint:

    def test_any_period(self, client):
        resp = client.post("/api/kerr/find-root", json={
            "params": point(0.45, 0.4), "theta_o": THETA_O, "phi_o": PHI_O,
            "tol": 1e-8})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["fail_reason"] is None
        assert data["root"]["rc"] == pytest.approx(ROOT_RC, abs=1e-7)
        assert data["root"]["period"] == 0

    def test_fixed_period(self, client):
        resp = client.post("/api/kerr/find-root", json={
            "params": point(0.45, 0.4), "theta_o": THETA_O, "phi_o": PHI_O,
            "period": 0})
        data = resp.get_json()
        assert data["success"] is True
        assert data["root"]["period"] == 0

    def test_non_integer_period(self, client):
        resp = client.post("/api/kerr/find-root", json={
            "params": point(0.45, 0.4), "theta_o": THETA_O, "phi_o": PHI_O,
            "period": 1.5})
        assert resp.status_code == 400

    def test_missing_target(self, client):
        resp = client.post("/api/kerr/find-root", json={
            "params": point(0.45, 0.4), "theta_o": THETA_O})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "phi_o is required"

    def test_negative_tol(self, client):
        resp = client.post("/api/kerr/find-root", json={
            "params": point(0.45, 0.4), "theta_o": THETA_O, "phi_o": PHI_O,
            "tol": -1})
        assert resp.status_code == 400


class TestSweepEndpoint:

    def sweep(self, client, **extra):
        payload = {
            "params": point(0.3, 0.2), "theta_o": THETA_O, "phi_o": PHI_O,
            "rc_list": GRID, "lgd_list": GRID, "cutoff": 3, "tol": 1e-6,
        }
        payload.update(extra)
        return client.post("/api/kerr/sweep", json=payload)

    def test_finds_single_image(self, client):
        resp = self.sweep(client)
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["results"]) == 1
        assert data["results"][0]["rc"] == pytest.approx(ROOT_RC, abs=1e-6)
        assert len(data["theta"]) == len(GRID)
        assert len(data["theta"][0]) == len(GRID)
        assert data["precision"] == "float64"

    def test_high_precision(self, client):
        data = self.sweep(client, high_precision=True).get_json()
        assert data["precision"] == "float64"
        assert data["results"][0]["log_abs_d"] == pytest.approx(ROOT_LGD, abs=1e-6)

    def test_no_nan_in_json(self, client):
        data = self.sweep(client).get_json()
        for row in data["delta_phi"]:
            for value in row:
                assert value is None or math.isfinite(value)

    def test_bad_axis(self, client):
        resp = self.sweep(client, rc_list="0.1,0.2")
        assert resp.status_code == 400
        assert "rc_list" in resp.get_json()["error"]

    def test_too_large_axis(self, client):
        resp = self.sweep(client, lgd_list=[0.0] * 1001)
        assert resp.status_code == 400


class TestClearCacheEndpoint:

    def test_clear(self, client, engine):
        client.post("/api/kerr/evaluate", json={"params": point(0.3, 0.2)})
        resp = client.post("/api/kerr/clear-cache")
        assert resp.status_code == 200
        assert resp.get_json() == {"cleared": True}
        for pool in engine._pools.values():
            assert pool.size == 0
