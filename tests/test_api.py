import io

import pandas as pd
import pytest


class TestApi:

    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok"}

    def test_generate_and_read_forecasts(self, client, seeded):
        resp = client.post("/api/v1/forecast/materials", json={"as_of": "2024-05-31", "forecast_days": 30})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "success"
        assert body["count"] == 3
        assert body["persisted"] == 3
        assert {d["reason"] for d in body["diagnostics"]} == {"material_not_found"}

        plywood = next(f for f in body["forecasts"] if f["material_id"] == seeded["plywood"])
        assert plywood["projected_stock"] == -1000.0
        assert plywood["status"] == "out_of_stock"

        listed = client.get("/api/v1/forecast/materials").get_json()
        assert [row["material_id"] for row in listed] == [3, 1, 2]

        one = client.get(f"/api/v1/forecast/materials/{seeded['plywood']}")
        assert one.status_code == 200
        assert one.get_json()["daily_usage"] == 40.0

    def test_dry_run_persists_nothing(self, client, seeded):
        resp = client.post("/api/v1/forecast/materials", json={"as_of": "2024-05-31", "persist": False})
        assert resp.get_json()["persisted"] == 0
        assert client.get("/api/v1/forecast/materials").get_json() == []

    def test_missing_snapshot_is_404(self, client):
        resp = client.get("/api/v1/forecast/materials/42")
        assert resp.status_code == 404
        assert resp.get_json()["status"] == "error"

    @pytest.mark.parametrize("body", [
        {"forecast_days": 0},
        {"historical_days": "soon"},
        {"source": "weekly"},
        {"as_of": "yesterday"},
    ])
    def test_bad_parameters_are_400(self, client, body):
        resp = client.post("/api/v1/forecast/materials", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["status"] == "error"

    def test_schedule(self, client, seeded):
        resp = client.get("/api/v1/replenishment/schedule?as_of=2024-05-31")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["summary"]["counts"]["high"] == 2
        assert body["tiers"]["high"][0]["material"] == "Glue"

    def test_schedule_csv(self, client, seeded):
        resp = client.get("/api/v1/replenishment/schedule.csv?as_of=2024-05-31")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        df = pd.read_csv(io.StringIO(resp.get_data(as_text=True)))
        assert list(df["material"]) == ["Glue", "Plywood"]
        assert set(df["tier"]) == {"high"}
        assert df["estimated_cost"].sum() == pytest.approx(5814.2)

    def test_schedule_rejects_bad_horizon(self, client):
        resp = client.get("/api/v1/replenishment/schedule?forecast_days=-1")
        assert resp.status_code == 400

    def test_stock_level_sync(self, client, seeded):
        resp = client.post("/api/v1/stock-levels/sync", json={"as_of": "2024-05-31"})
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "success", "count": 3, "needs_reorder": 1}


class TestCli:

    def test_generate_forecasts_command(self, seeded):
        from app import app

        result = app.test_cli_runner().invoke(args=["generate-forecasts", "--forecast-days", "14"])
        assert result.exit_code == 0, result.output
        assert "3/3 forecasts persisted" in result.output
