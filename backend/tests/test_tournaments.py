from fastapi.testclient import TestClient


def test_create_and_list_tournaments(client: TestClient):
    """Creating a tournament returns it and it shows up in the list"""
    response = client.post("/api/tournaments", json={"name": "Spring Split", "game": "cs2", "notes": "LAN"})

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Spring Split"
    assert data["game"] == "cs2"

    listed = client.get("/api/tournaments")
    assert listed.status_code == 200
    assert [t["id"] for t in listed.json()] == [data["id"]]


def test_tournament_name_required(client: TestClient):
    response = client.post("/api/tournaments", json={"name": "   "})
    assert response.status_code == 422


def test_update_tournament(client: TestClient, tournament_id: int):
    response = client.put(f"/api/tournaments/{tournament_id}", json={"notes": "moved online"})
    assert response.status_code == 200
    assert response.json()["notes"] == "moved online"
    assert response.json()["name"] == "Test Cup"


def test_missing_tournament_404(client: TestClient):
    assert client.get("/api/tournaments/999").status_code == 404
    assert client.post("/api/tournaments/999/stages", json={"name": "x", "format": "swiss", "teams": ["A", "B"]}).status_code == 404


def test_health(client: TestClient):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_stage_validation(client: TestClient, tournament_id: int):
    """Unknown format, duplicate and reserved team names are rejected"""
    base = {"name": "Playoffs", "format": "single_elimination", "teams": ["A", "B"]}

    assert client.post(f"/api/tournaments/{tournament_id}/stages", json={**base, "format": "league"}).status_code == 422
    assert client.post(f"/api/tournaments/{tournament_id}/stages", json={**base, "teams": ["A", "A"]}).status_code == 422
    assert client.post(f"/api/tournaments/{tournament_id}/stages", json={**base, "teams": ["A", "BYE"]}).status_code == 422
    assert client.post(f"/api/tournaments/{tournament_id}/stages", json={**base, "match_format": "BO9"}).status_code == 422

    created = client.post(f"/api/tournaments/{tournament_id}/stages", json=base)
    assert created.status_code == 201
    stage = client.get(f"/api/stages/{created.json()['id']}").json()
    assert stage["match_format"] == "BO3"
    assert stage["final_format"] == "BO5"
    assert stage["current_round"] == 0
