"""HTTP tests for the retirement, scenario and calculator blueprints."""

import pytest

import routes
from planner.retirement.monte_carlo import SimulationCancelled, SimulationRunError

SMALL_RUN = {
    "portfolio_value": 1_000_000,
    "annual_expenses": 40_000,
    "retirement_years": 30,
    "withdrawal_rate": 4,
    "market_return": 7,
    "inflation_rate": 2.5,
    "num_simulations": 200,
}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


# ---------- simulation ----------

def test_simulate_returns_full_payload(client):
    resp = client.post("/api/retirement/simulate", json={**SMALL_RUN, "seed": 7})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["seed"] == 7
    assert body["inputs"]["withdrawal_rate"] == 4.0
    results = body["results"]
    assert results["num_simulations"] == 200
    assert 0 <= results["success_rate"] <= 100
    assert len(results["percentiles"]["p50"]) == 31
    assert "trials" not in results
    assert set(body["statistics"]["depletion_probs"]) == {"10", "20", "30", "ever"}
    assert body["analysis"]["tier"] in {"excellent", "good", "moderate", "high-risk"}
    assert isinstance(body["recommendations"], list)


def test_simulate_is_reproducible_with_seed(client):
    a = client.post("/api/retirement/simulate", json={**SMALL_RUN, "seed": 11}).get_json()
    b = client.post("/api/retirement/simulate", json={**SMALL_RUN, "seed": 11}).get_json()
    assert a["results"] == b["results"]


def test_simulate_reuses_session_seed(client):
    a = client.post("/api/retirement/simulate", json=SMALL_RUN).get_json()
    b = client.post("/api/retirement/simulate", json=SMALL_RUN).get_json()
    assert a["seed"] == b["seed"]
    assert a["results"]["success_rate"] == b["results"]["success_rate"]


def test_simulate_accepts_nested_inputs_and_events(client):
    payload = {
        "inputs": {**SMALL_RUN, "num_simulations": 100},
        "incomeEvents": [{"name": "Pension", "amount": 20000, "type": "recurring", "startYear": 1, "endYear": 30}],
        "expense_events": [{"name": "", "amount": 5000, "start_year": 2}],
        "include_trials": True,
        "seed": 3,
    }
    body = client.post("/api/retirement/simulate", json=payload).get_json()
    assert body["inputs"]["num_simulations"] == 100
    assert [e["name"] for e in body["income_events"]] == ["Pension"]
    assert body["expense_events"] == []
    assert len(body["results"]["trials"]) == 100


def test_simulate_array_body_runs_defaults(client):
    resp = client.post("/api/retirement/simulate", json=[1, 2, 3])
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["inputs"]["portfolio_value"] == 1_000_000
    assert body["results"]["num_simulations"] == 1000


def test_simulate_string_inputs_falls_back_to_top_level(client):
    resp = client.post("/api/retirement/simulate", json={**SMALL_RUN, "inputs": "abc", "num_simulations": 60})
    assert resp.status_code == 200
    assert resp.get_json()["results"]["num_simulations"] == 60


@pytest.mark.parametrize("events", [
    {"income_events": 5},
    {"expense_events": "abc"},
    {"incomeEvents": {"name": "Pension", "amount": 1000, "start_year": 1}},
])
def test_simulate_ignores_non_list_events(client, events):
    resp = client.post("/api/retirement/simulate", json={**SMALL_RUN, "num_simulations": 50, **events})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["income_events"] == []
    assert body["expense_events"] == []


def test_simulate_without_seed_uses_session_seed(client):
    resp = client.post("/api/retirement/simulate", json={**SMALL_RUN, "num_simulations": 50})
    assert resp.status_code == 200
    seed = resp.get_json()["seed"]
    assert 0 <= seed < 2 ** 31
    with client.session_transaction() as sess:
        assert sess["ret_mc_seed"] == seed


def test_simulation_cap_from_config(client):
    body = client.post("/api/retirement/simulate", json={**SMALL_RUN, "num_simulations": 999_999, "seed": 1}).get_json()
    assert body["results"]["num_simulations"] == 2000


def test_simulate_run_error_is_500(client, monkeypatch):
    def fail(*args, **kwargs):
        raise SimulationRunError("trial 3 failed")

    monkeypatch.setattr(routes, "run_monte_carlo", fail)
    resp = client.post("/api/retirement/simulate", json=SMALL_RUN)
    assert resp.status_code == 500
    assert resp.get_json()["status"] == "failed"


def test_simulate_cancelled_is_409(client, monkeypatch):
    def cancelled(*args, **kwargs):
        raise SimulationCancelled("cancelled after 100 of 200 trials")

    monkeypatch.setattr(routes, "run_monte_carlo", cancelled)
    resp = client.post("/api/retirement/simulate", json=SMALL_RUN)
    assert resp.status_code == 409
    assert resp.get_json()["status"] == "cancelled"


def test_simulate_unknown_scenario_is_404(client):
    resp = client.post("/api/retirement/simulate", json={**SMALL_RUN, "scenario_id": "scenario_0_000000000"})
    assert resp.status_code == 404


def test_simulate_stores_results_in_scenario(client):
    saved = client.post("/scenarios/save", json={"name": "Run me"}).get_json()["scenario"]
    body = client.post("/api/retirement/simulate",
                       json={**SMALL_RUN, "seed": 5, "scenario_id": saved["id"]}).get_json()
    assert body["scenario_id"] == saved["id"]

    loaded = client.get(f"/scenarios/load/{saved['id']}").get_json()
    assert loaded["results"]["success_rate"] == body["results"]["success_rate"]
    assert loaded["config"]["annual_expenses"] == 40_000
    assert loaded["config"]["income_events"] == []


def test_recommendations_bootstrap(client):
    body = client.post("/api/retirement/recommendations", json={}).get_json()
    assert body["recommendations"][0]["title"] == "Run your Monte Carlo simulation"


def test_recommendations_non_object_body_bootstraps(client):
    resp = client.post("/api/retirement/recommendations", json=["a", "b"])
    assert resp.status_code == 200
    assert resp.get_json()["recommendations"][0]["title"] == "Run your Monte Carlo simulation"


def test_recommendations_with_results(client):
    payload = {**SMALL_RUN, "annual_expenses": 60_000, "results": {"success_rate": 40.0, "percentile10": 0}}
    recs = client.post("/api/retirement/recommendations", json=payload).get_json()["recommendations"]
    assert recs[0]["priority"] == "critical"
    assert recs[0]["category"] == "success-rate"


# ---------- scenarios ----------

def test_scenario_crud_flow(client):
    created = client.post("/scenarios/save", json={"name": "Early", "config": {"portfolio_value": 800_000}})
    assert created.status_code == 200
    sid = created.get_json()["scenario"]["id"]

    listed = client.get("/scenarios/list").get_json()
    assert [s["id"] for s in listed] == [sid]

    renamed = client.post("/scenarios/save", json={"id": sid, "name": "Early v2"}).get_json()["scenario"]
    assert renamed["id"] == sid
    assert renamed["name"] == "Early v2"
    assert renamed["config"] == {"portfolio_value": 800_000}

    dup = client.post(f"/scenarios/duplicate/{sid}", json={}).get_json()
    assert dup["name"] == "Early v2 (Copy)"

    assert client.get("/scenarios/last").get_json()["id"] == dup["id"]
    assert client.get(f"/scenarios/load/{sid}").status_code == 200
    assert client.get("/scenarios/last").get_json()["id"] == sid

    deleted = client.delete(f"/scenarios/delete/{sid}")
    assert deleted.status_code == 200
    assert client.get(f"/scenarios/load/{sid}").status_code == 404
    # last selection was cleared; falls back to the remaining scenario
    assert client.get("/scenarios/last").get_json()["id"] == dup["id"]


def test_last_creates_default(client):
    body = client.get("/scenarios/last").get_json()
    assert body["name"] == "Default Scenario"
    assert body["config"]["num_simulations"] == 1000


def test_missing_scenarios_are_404(client):
    assert client.get("/scenarios/load/nope").status_code == 404
    assert client.delete("/scenarios/delete/nope").status_code == 404
    assert client.post("/scenarios/duplicate/nope", json={}).status_code == 404


def test_save_rejects_non_object_config(client):
    resp = client.post("/scenarios/save", json={"name": "bad", "config": [1, 2]})
    assert resp.status_code == 400


def test_scenarios_are_private_to_session(app):
    alice = app.test_client()
    bob = app.test_client()
    sid = alice.post("/scenarios/save", json={"name": "Alice"}).get_json()["scenario"]["id"]
    assert bob.get("/scenarios/list").get_json() == []
    assert bob.get(f"/scenarios/load/{sid}").status_code == 404


# ---------- calculators ----------

def test_fire_endpoint(client):
    body = client.post("/api/fire/calculate", json={"monthly_contribution": 2000}).get_json()
    assert body["errors"] == []
    assert body["fire_number"] == 1_000_000
    assert body["years_to_fire"] is not None


def test_fire_endpoint_validation(client):
    resp = client.post("/api/fire/calculate", json={"current_age": 60, "target_age": 50})
    assert resp.status_code == 400
    assert "Target retirement age must be greater than current age" in resp.get_json()["errors"]


def test_net_worth_endpoint(client):
    body = client.post("/api/net-worth/project", json={"years": 20}).get_json()
    assert len(body["projection"]) == 21
    assert body["inputs"]["years"] == 20
