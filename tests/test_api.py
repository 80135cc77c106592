from conftest import auth_headers


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["app"] == "actor-dashboard"
    assert body["apifyApiUrl"].startswith("http")


def test_invalid_api_key_is_rejected_without_side_effects(client, service):
    res = client.post("/api/auth/validate", json={"apiKey": "bad-key"})

    assert res.status_code == 401
    assert "message" in res.json()
    assert len(service.sessions) == 0
    assert len(service.users) == 0
    assert len(service.catalog) == 0


def test_failed_actor_listing_creates_nothing(client, service, remote):
    remote.fail_list = True
    res = client.post("/api/auth/validate", json={"apiKey": "good-key"})

    assert res.status_code == 500
    assert len(service.sessions) == 0
    assert len(service.users) == 0


def test_missing_api_key_is_a_400_with_message(client):
    res = client.post("/api/auth/validate", json={})
    assert res.status_code == 400
    assert "apiKey" in res.json()["message"]


def test_validate_returns_session_user_and_actors(client):
    res = client.post("/api/auth/validate", json={"apiKey": "good-key"})
    body = res.json()

    assert res.status_code == 200
    assert body["success"] is True
    assert body["sessionId"] == "session_1"
    assert body["user"]["username"] == "alice"
    assert [a["actorId"] for a in body["actors"]] == ["act1", "act2"]
    assert body["actors"][0]["name"] == "Web Scraper"
    assert body["actors"][0]["runCount"] == "3"


def test_repeated_authentication_does_not_duplicate_actors(client, service):
    first = auth_headers(client)
    second = auth_headers(client)

    assert first != second
    assert len(service.users) == 1
    actors = client.get("/api/actors", headers=second).json()["actors"]
    assert len(actors) == 2


def test_routes_require_a_known_bearer_token(client):
    for method, path in [
        ("get", "/api/actors"),
        ("get", "/api/actors/act1/schema"),
        ("get", "/api/actors/act1/form"),
        ("post", "/api/actors/act1/select"),
        ("get", "/api/executions"),
        ("get", "/api/executions/abc/status"),
    ]:
        res = getattr(client, method)(path, headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401, path
        assert res.json() == {"message": "Unauthorized. Please authenticate first."}

    res = client.post("/api/actors/execute", json={"actorId": "act1", "inputs": {}})
    assert res.status_code == 401


def test_schema_and_form(client, headers, remote):
    schema = client.get("/api/actors/act1/schema", headers=headers).json()["schema"]
    assert list(schema["properties"]) == ["startUrls", "maxPages", "proxy"]

    form = client.get("/api/actors/act1/form", headers=headers).json()
    assert [f["control"] for f in form["fields"]] == ["textarea", "number", "checkbox"]
    assert form["fields"][0]["required"] is True
    assert "message" not in form
    # second lookup is served from the catalog cache
    assert remote.schema_calls == 1


def test_form_without_parameters(client, headers):
    form = client.get("/api/actors/act2/form", headers=headers).json()
    assert form["fields"] == []
    assert form["message"] == "This actor has no configurable parameters."


def test_schema_for_unknown_actor_is_upstream_failure(client, headers):
    res = client.get("/api/actors/ghost/schema", headers=headers)
    assert res.status_code == 500
    assert res.json()["message"]


def test_select_actor(client, headers):
    assert client.post("/api/actors/act1/select", headers=headers).json() == {"success": True}
    assert client.post("/api/actors/act2/select", headers=headers).json() == {"success": True}

    actors = client.get("/api/actors", headers=headers).json()["actors"]
    assert [a["actorId"] for a in actors if a["isSelected"]] == ["act2"]


def test_select_unknown_actor_is_404(client, headers):
    res = client.post("/api/actors/ghost/select", headers=headers)
    assert res.status_code == 404


def test_execute_then_poll_to_success(client, headers, remote):
    res = client.post("/api/actors/execute", json={"actorId": "act1", "inputs": {"maxPages": 2}}, headers=headers)
    body = res.json()
    assert res.status_code == 200
    assert body["success"] is True
    assert body["runId"] == "run1"
    assert body["status"] == "RUNNING"
    assert remote.started[0]["inputs"] == {"maxPages": 2}

    status_url = f"/api/executions/{body['executionId']}/status"
    first = client.get(status_url, headers=headers).json()
    assert first["status"] == "RUNNING"
    assert first["results"] is None
    assert remote.results_calls == 0

    second = client.get(status_url, headers=headers).json()
    assert second["status"] == "SUCCEEDED"
    assert second["results"] == remote.results
    assert second["stats"] == {"requestsFinished": 2}
    assert second["finishedAt"] is not None
    assert second["duration"] == "01:05"
    assert remote.results_calls == 1

    # terminal records are not refreshed again
    third = client.get(status_url, headers=headers).json()
    assert third["status"] == "SUCCEEDED"
    assert remote.status_calls == 2
    assert remote.results_calls == 1


def test_execute_with_raw_form_values(client, headers, remote):
    res = client.post(
        "/api/actors/execute",
        json={"actorId": "act1", "formValues": {"startUrls": "a\n\nb \n c", "maxPages": "abc"}},
        headers=headers,
    )
    assert res.status_code == 200
    assert remote.started[0]["inputs"] == {"startUrls": ["a", "b", "c"], "proxy": False}


def test_failed_trigger_leaves_no_record(client, headers, remote, service):
    remote.fail_start = True
    res = client.post("/api/actors/execute", json={"actorId": "act1", "inputs": {}}, headers=headers)

    assert res.status_code == 500
    assert res.json() == {"message": "Failed to execute actor"}
    assert len(service.executions) == 0


def test_failed_run_status(client, headers, remote):
    remote.script = ["FAILED"]
    execution_id = client.post(
        "/api/actors/execute", json={"actorId": "act1", "inputs": {}}, headers=headers
    ).json()["executionId"]

    body = client.get(f"/api/executions/{execution_id}/status", headers=headers).json()
    assert body["status"] == "FAILED"
    assert body["results"] is None
    assert remote.results_calls == 0


def test_other_users_execution_is_not_found(client, headers):
    execution_id = client.post(
        "/api/actors/execute", json={"actorId": "act1", "inputs": {}}, headers=headers
    ).json()["executionId"]

    bob = auth_headers(client, "bob-key")
    assert client.get(f"/api/executions/{execution_id}/status", headers=bob).status_code == 404
    assert client.get(f"/api/executions/{execution_id}/results", headers=bob).status_code == 404
    assert client.get("/api/executions", headers=bob).json() == {"executions": []}


def test_unknown_execution_is_not_found(client, headers):
    res = client.get("/api/executions/missing/status", headers=headers)
    assert res.status_code == 404
    assert res.json() == {"message": "Execution not found."}


def test_results_download(client, headers, remote):
    execution_id = client.post(
        "/api/actors/execute", json={"actorId": "act1", "inputs": {}}, headers=headers
    ).json()["executionId"]
    status_url = f"/api/executions/{execution_id}/status"
    client.get(status_url, headers=headers)
    client.get(status_url, headers=headers)

    res = client.get(f"/api/executions/{execution_id}/results", headers=headers)
    assert res.status_code == 200
    assert res.json() == remote.results
    assert res.headers["content-disposition"] == f'attachment; filename="actor-results-{execution_id}.json"'


def test_list_executions(client, headers):
    client.post("/api/actors/execute", json={"actorId": "act1", "inputs": {}}, headers=headers)
    client.post("/api/actors/execute", json={"actorId": "act2", "inputs": {}}, headers=headers)

    executions = client.get("/api/executions", headers=headers).json()["executions"]
    assert sorted(e["actorId"] for e in executions) == ["act1", "act2"]
    assert all(e["status"] == "RUNNING" for e in executions)


def test_actor_ids_with_slashes(client, headers, remote):
    remote.schemas["apify/web-scraper"] = {"properties": {"q": {"type": "string"}}}
    res = client.get("/api/actors/apify/web-scraper/form", headers=headers)
    assert res.status_code == 200
    assert res.json()["actorId"] == "apify/web-scraper"
    assert [f["name"] for f in res.json()["fields"]] == ["q"]


def test_failed_results_fetch_is_retried_on_next_status_call(client, headers, remote):
    execution_id = client.post(
        "/api/actors/execute", json={"actorId": "act1", "inputs": {}}, headers=headers
    ).json()["executionId"]
    status_url = f"/api/executions/{execution_id}/status"
    client.get(status_url, headers=headers)

    remote.fail_results = 1
    succeeded = client.get(status_url, headers=headers)
    assert succeeded.status_code == 200
    assert succeeded.json()["status"] == "SUCCEEDED"
    assert succeeded.json()["results"] is None

    retried = client.get(status_url, headers=headers).json()
    assert retried["status"] == "SUCCEEDED"
    assert retried["results"] == remote.results
    assert remote.results_calls == 2
    # the status itself is not fetched again once terminal
    assert remote.status_calls == 2


def test_empty_dataset_is_a_final_result(client, headers, remote):
    remote.results = []
    execution_id = client.post(
        "/api/actors/execute", json={"actorId": "act1", "inputs": {}}, headers=headers
    ).json()["executionId"]
    status_url = f"/api/executions/{execution_id}/status"
    client.get(status_url, headers=headers)
    client.get(status_url, headers=headers)
    client.get(status_url, headers=headers)

    assert remote.results_calls == 1
