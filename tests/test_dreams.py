def test_create_and_fetch_dream(client, user):
    _, headers = user
    response = client.post(
        "/dreams",
        json={"title": "The red door", "content": "A door in the forest", "mood": "curious", "tags": ["forest", "door"]},
        headers=headers,
    )
    assert response.status_code == 201
    dream = response.json()
    assert dream["title"] == "The red door"
    assert dream["tags"] == ["forest", "door"]

    fetched = client.get(f"/dreams/{dream['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["content"] == "A door in the forest"


def test_create_dream_requires_content(client, user):
    _, headers = user
    response = client.post("/dreams", json={"title": "Empty"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_list_filters_and_paginates(client, user):
    _, headers = user
    client.post("/dreams", json={"content": "Flying over the ocean", "mood": "happy"}, headers=headers)
    client.post("/dreams", json={"content": "Lost in a maze", "mood": "anxious", "tags": ["maze"]}, headers=headers)
    client.post("/dreams", json={"content": "Flying again", "mood": "happy"}, headers=headers)

    body = client.get("/dreams", params={"q": "flying"}, headers=headers).json()
    assert body["total"] == 2

    body = client.get("/dreams", params={"mood": "anxious"}, headers=headers).json()
    assert [d["content"] for d in body["items"]] == ["Lost in a maze"]

    body = client.get("/dreams", params={"tag": "maze"}, headers=headers).json()
    assert body["total"] == 1

    body = client.get("/dreams", params={"page": 1, "page_size": 5}, headers=headers).json()
    assert body["page"] == 1
    assert body["page_size"] == 5
    assert len(body["items"]) == 3


def test_update_dream(client, user):
    _, headers = user
    dream = client.post("/dreams", json={"content": "Original"}, headers=headers).json()

    response = client.put(f"/dreams/{dream['id']}", json={"content": "Edited", "tags": ["edit"]}, headers=headers)
    assert response.status_code == 200
    assert response.json()["content"] == "Edited"
    assert response.json()["tags"] == ["edit"]


def test_editing_is_not_limited(client, db_session, user):
    _, headers = user
    dream = client.post("/dreams", json={"content": "Draft"}, headers=headers).json()
    for i in range(15):
        response = client.put(f"/dreams/{dream['id']}", json={"content": f"Draft {i}"}, headers=headers)
        assert response.status_code == 200


def test_dreams_are_private(client, user, make_user):
    _, owner_headers = user
    _, other_headers = make_user("someone-else@example.com")
    dream = client.post("/dreams", json={"content": "Mine"}, headers=owner_headers).json()

    assert client.get(f"/dreams/{dream['id']}", headers=other_headers).status_code == 404
    assert client.put(f"/dreams/{dream['id']}", json={"content": "x"}, headers=other_headers).status_code == 404
    assert client.delete(f"/dreams/{dream['id']}", headers=other_headers).status_code == 404
    assert client.get("/dreams", headers=other_headers).json()["total"] == 0


def test_delete_dream_keeps_quota_used(client, db_session, user):
    _, headers = user
    dream = client.post("/dreams", json={"content": "Short lived"}, headers=headers).json()

    assert client.delete(f"/dreams/{dream['id']}", headers=headers).status_code == 204
    assert client.get(f"/dreams/{dream['id']}", headers=headers).status_code == 404
    assert client.get("/billing/status", headers=headers).json()["usage"]["dream_create"] == 1
