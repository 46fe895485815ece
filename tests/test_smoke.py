def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_ok(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_landing_page_renders(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Apply for a loan" in r.data


def test_protected_pages_redirect_to_login(client):
    for path in ("/dashboard", "/applications", "/admin/", "/locations/regions"):
        r = client.get(path)
        assert r.status_code == 302, path
        assert "/auth/login" in r.headers["Location"]
        assert "redirectTo=" in r.headers["Location"]


def test_unknown_route_is_404(client):
    r = client.get("/no-such-page")
    assert r.status_code == 404
    assert b"Not found" in r.data


def test_dashboard_after_login(processor_client):
    r = processor_client.get("/dashboard")
    assert r.status_code == 200
    assert b"Start a new application" in r.data


def test_schema_guardrail_when_wizard_columns_missing(app, processor_client):
    app.config["_schema_health_ok"] = False
    app.config["_schema_health_missing"] = ["applications.current_step"]
    r = processor_client.get("/dashboard")
    assert r.status_code == 500
    assert b"applications.current_step" in r.data

    # Health probes stay up.
    assert processor_client.get("/healthz").status_code == 200
