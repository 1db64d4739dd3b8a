def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"message": "server is running"}


def test_root_links(client):
    assert client.get("/").json()["links"]["health"] == "/health"


def test_snake_case_input_accepted(client, login):
    """Clients may send snake_case field names as well."""
    alice = login("alice")
    response = client.post("/api/messages", json={"user_id": alice["id"], "content": "hi"})
    assert response.status_code == 201
    assert response.json()["userId"] == alice["id"]
