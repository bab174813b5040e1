"""
API tests for the Rules Service.
"""

import pytest
from fastapi.testclient import TestClient

from service_rules.app.main import RulesService
from shared.test_helpers import TestDataFactory


class TestRulesService:
    """Test cases for the rules service API."""

    @pytest.fixture
    def service(self):
        return RulesService()

    @pytest.fixture
    def client(self, service):
        with TestClient(service.app) as client:
            yield client

    @pytest.fixture
    def created_rule(self, client):
        response = client.post("/rules", json=TestDataFactory.create_rule_payload())
        assert response.status_code == 201
        return response.json()["rule"]

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "rules"

    def test_health_endpoint(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"]["rule_store"] == "ok"
        assert data["dependencies"]["rule_store_circuit"] == "closed"

    def test_metrics_endpoint(self, client):
        client.get("/")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_create_rule(self, client, created_rule):
        assert created_rule["name"] == "High Occupancy Markup"
        assert created_rule["updated_by"] == "tester"
        assert created_rule["conditions"] == [{"type": "occupancy", "operator": "greater_than", "value": 90}]

    def test_create_invalid_rule(self, client):
        response = client.post("/rules", json=TestDataFactory.create_rule_payload(actions=[]))

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "VALIDATION_ERROR"
        assert "At least one action is required" in data["details"]["errors"]

    def test_validate_without_saving(self, client):
        response = client.post("/rules/validate", json={"name": "Incomplete"})

        assert response.status_code == 200
        assert response.json()["is_valid"] is False
        assert client.get("/rules", params={"organization_id": "org-1"}).json()["total"] == 0

    def test_list_and_get_rule(self, client, created_rule):
        listing = client.get("/rules", params={"organization_id": "org-1", "category": "PRICING"})
        single = client.get(f"/rules/{created_rule['rule_id']}")

        assert listing.json()["total"] == 1
        assert single.json()["rule_id"] == created_rule["rule_id"]

    def test_get_missing_rule(self, client):
        response = client.get("/rules/missing")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_update_rule(self, client, created_rule):
        response = client.put(
            f"/rules/{created_rule['rule_id']}",
            json={"name": "Renamed", "priority": 3, "updated_by": "ops"}
        )

        assert response.status_code == 200
        rule = response.json()["rule"]
        assert rule["name"] == "Renamed"
        assert rule["priority"] == 3
        assert rule["created_by"] == "tester"
        assert rule["updated_by"] == "ops"

    def test_update_can_make_rule_organization_wide(self, client):
        created = client.post(
            "/rules", json=TestDataFactory.create_rule_payload(property_id="property-1", description="Lobby")
        ).json()["rule"]

        response = client.put(
            f"/rules/{created['rule_id']}",
            json={"property_id": None, "is_active": None, "priority": 4}
        )

        assert response.status_code == 200
        rule = response.json()["rule"]
        assert rule["property_id"] is None
        assert rule["description"] == "Lobby"
        assert rule["is_active"] is True
        assert rule["priority"] == 4

    def test_update_with_invalid_action(self, client, created_rule):
        response = client.put(
            f"/rules/{created_rule['rule_id']}",
            json={"actions": [{"type": "multiply_price", "value": "double"}]}
        )

        assert response.status_code == 422

    def test_toggle_flips_and_sets(self, client, created_rule):
        rule_id = created_rule["rule_id"]

        flipped = client.post(f"/rules/{rule_id}/toggle")
        explicit = client.post(f"/rules/{rule_id}/toggle", json={"is_active": False})

        assert flipped.json()["is_active"] is False
        assert explicit.json()["is_active"] is False

    def test_delete_rule(self, client, created_rule):
        rule_id = created_rule["rule_id"]

        assert client.delete(f"/rules/{rule_id}").json() == {"deleted": True, "rule_id": rule_id}
        assert client.delete(f"/rules/{rule_id}").status_code == 404

    def test_bulk_operation_reports_failures(self, client, created_rule):
        response = client.post("/rules/bulk", json={
            "operation": "deactivate",
            "rule_ids": [created_rule["rule_id"], "missing"],
            "updated_by": "ops",
        })

        data = response.json()
        assert data["succeeded"] == [created_rule["rule_id"]]
        assert data["failed"][0]["rule_id"] == "missing"
        assert data["failed"][0]["code"] == "NOT_FOUND"

    def test_bulk_update_priority(self, client, created_rule):
        rule_id = created_rule["rule_id"]

        missing_priority = client.post("/rules/bulk", json={"operation": "update_priority", "rule_ids": [rule_id]})
        updated = client.post("/rules/bulk", json={
            "operation": "update_priority", "rule_ids": [rule_id], "priority": 7
        })

        assert missing_priority.status_code == 422
        assert updated.json()["succeeded"] == [rule_id]
        assert client.get(f"/rules/{rule_id}").json()["priority"] == 7

    def test_evaluate_rules(self, client, created_rule):
        response = client.post("/rules/evaluate", json={
            "context": {
                "organization_id": "org-1",
                "property_id": "property-1",
                "date": "2025-06-11",
                "current_price": 100,
                "occupancy_rate": 95,
            },
            "record": False,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["final_price"] == 120.0
        assert data["applied_rules"][0]["rule_id"] == created_rule["rule_id"]
        assert data["context"]["day_of_week"] == "wednesday"

    def test_evaluate_rejects_negative_price(self, client):
        response = client.post("/rules/evaluate", json={
            "context": {"organization_id": "org-1", "date": "2025-06-11", "current_price": -5}
        })

        assert response.status_code == 400
        assert response.json()["code"] == "CONTEXT_ERROR"

    def test_pricing_quote_and_comparison(self, client, created_rule):
        request = {
            "organization_id": "org-1",
            "property_id": "property-1",
            "room_type_id": "room-type-deluxe",
            "date": "2025-06-11",
            "occupancy_override": 95,
            "advance_booking_days": 10,
        }

        quote = client.post("/pricing/quote", json=request).json()
        comparison = client.post("/pricing/comparison", json=request).json()

        assert quote["original_price"] == 2000.0
        assert quote["final_price"] == 2400.0
        assert comparison["price_difference"] == 400.0
        assert comparison["price_difference_percentage"] == 20.0

    def test_install_samples_and_scenarios(self, client):
        installed = client.post("/rules/samples", json={"organization_id": "org-2", "created_by": "tester"})
        scenarios = client.post("/pricing/scenarios", json={
            "organization_id": "org-2",
            "property_id": "property-1",
            "room_type_id": "room-type-deluxe",
        })

        assert installed.status_code == 201
        assert installed.json()["total"] == 10
        assert scenarios.json()["total"] == 6

    def test_performance_for_new_rule(self, client, created_rule):
        rule_id = created_rule["rule_id"]

        performance = client.get(f"/rules/{rule_id}/performance").json()
        executions = client.get(f"/rules/{rule_id}/executions", params={"limit": 5}).json()

        assert performance["total_executions"] == 0
        assert performance["performance_trend"] == "stable"
        assert executions == {"rule_id": rule_id, "executions": [], "limit": 5, "offset": 0}
