from app.lending.db import session_scope
from app.lending.modules.applications.models import Application
from conftest import CSRF, STEP1, STEP3, login_as, make_user, step2_data


def _new_draft(client) -> str:
    r = client.post("/applications/new", data={"csrf_token": CSRF})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/edit/step-1")
    return r.headers["Location"].split("/applications/")[1].split("/")[0]


def _post_step(client, app_id, step, data):
    return client.post(f"/applications/{app_id}/edit/step-{step}", data={**data, "csrf_token": CSRF})


def _load(app, app_id) -> Application:
    with session_scope(app) as s:
        return s.get(Application, app_id)


def test_create_draft_and_open_first_step(app, processor_client):
    app_id = _new_draft(processor_client)
    r = processor_client.get(f"/applications/{app_id}/edit/step-1")
    assert r.status_code == 200
    assert b"Personal Information" in r.data
    assert b'name="borrower_first_name"' in r.data
    assert b"data-autosave-url" in r.data
    assert _load(app, app_id).status == "draft"


def test_cannot_skip_ahead(processor_client):
    app_id = _new_draft(processor_client)
    r = processor_client.get(f"/applications/{app_id}/edit/step-3")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/edit/step-1")

    r = _post_step(processor_client, app_id, 3, STEP3)
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/applications/{app_id}/edit")


def test_invalid_step_rerenders_with_errors(app, processor_client):
    app_id = _new_draft(processor_client)
    r = _post_step(processor_client, app_id, 1, {**STEP1, "borrower_phone": "123"})
    assert r.status_code == 200
    assert b"Please enter a valid Philippine phone number" in r.data
    # Submitted values are echoed back.
    assert b'value="Maria"' in r.data
    assert _load(app, app_id).current_step == 1


def test_full_wizard_submission(app, processor_client):
    app_id = _new_draft(processor_client)

    r = _post_step(processor_client, app_id, 1, STEP1)
    assert r.headers["Location"].endswith("/edit/step-2")

    r = processor_client.get(f"/applications/{app_id}/edit/step-2")
    assert b"National Capital Region (NCR)" in r.data

    with session_scope(app) as s:
        address = step2_data(s)
    r = _post_step(processor_client, app_id, 2, address)
    assert r.headers["Location"].endswith("/edit/step-3")

    r = processor_client.get(f"/applications/{app_id}/edit/step-3")
    assert b"12 months (9.0% p.a.)" in r.data

    r = _post_step(processor_client, app_id, 3, STEP3)
    assert r.headers["Location"].endswith("/edit/step-4")

    r = processor_client.get(f"/applications/{app_id}/edit/step-4")
    assert r.status_code == 200
    assert b"Monthly payment" in r.data
    assert b"Quezon City" in r.data

    r = _post_step(processor_client, app_id, 4, {})
    assert r.status_code == 200
    assert b"You must accept the terms and conditions to proceed" in r.data

    r = _post_step(processor_client, app_id, 4, {"terms_accepted": "on"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/applications")

    a = _load(app, app_id)
    assert a.status == "submitted"
    r = processor_client.get("/applications")
    assert b"submitted successfully" in r.data

    # Submitted applications are read-only.
    r = processor_client.get(f"/applications/{app_id}/edit/step-1", follow_redirects=True)
    assert b"Only draft applications can be edited." in r.data


def test_edit_resumes_at_current_step(processor_client):
    app_id = _new_draft(processor_client)
    _post_step(processor_client, app_id, 1, STEP1)
    r = processor_client.get(f"/applications/{app_id}/edit")
    assert r.headers["Location"].endswith("/edit/step-2")


def test_autosave_persists_step_data(app, processor_client):
    app_id = _new_draft(processor_client)
    r = processor_client.post(
        f"/applications/{app_id}/autosave",
        json={"data": {"step1": {"borrower_first_name": "Partial"}}},
        headers={"X-CSRF-Token": CSRF},
    )
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["lastSavedAt"].endswith("Z")

    a = _load(app, app_id)
    assert a.step_data == {"step1": {"borrower_first_name": "Partial"}}
    assert a.current_step == 1

    # Autosaved values prefill the form.
    r = processor_client.get(f"/applications/{app_id}/edit/step-1")
    assert b'value="Partial"' in r.data


def test_autosave_rejects_bad_payload(processor_client):
    app_id = _new_draft(processor_client)
    r = processor_client.post(
        f"/applications/{app_id}/autosave", json={"step1": {}}, headers={"X-CSRF-Token": CSRF}
    )
    assert r.status_code == 400
    assert r.json["message"] == "Invalid autosave payload"


def test_autosave_on_submitted_application_conflicts(app, processor_client):
    app_id = _new_draft(processor_client)
    with session_scope(app) as s:
        s.get(Application, app_id).status = "submitted"
    r = processor_client.post(
        f"/applications/{app_id}/autosave", json={"data": {"step1": {}}}, headers={"X-CSRF-Token": CSRF}
    )
    assert r.status_code == 409
    assert r.json["message"] == "Only draft applications can be modified"


def test_other_processors_cannot_see_draft(app, client, processor):
    login_as(client, processor)
    app_id = _new_draft(client)

    other = make_user(app, "other@example.com")
    login_as(client, other)
    r = client.get(f"/applications/{app_id}", follow_redirects=True)
    assert b"Application not found" in r.data

    r = client.post(f"/applications/{app_id}/autosave", json={"data": {}}, headers={"X-CSRF-Token": CSRF})
    assert r.status_code == 404


def test_admin_sees_any_application(client, processor, admin):
    login_as(client, processor)
    app_id = _new_draft(client)
    login_as(client, admin)
    r = client.get(f"/applications/{app_id}")
    assert r.status_code == 200


def test_delete_draft(app, processor_client):
    app_id = _new_draft(processor_client)
    r = processor_client.post(f"/applications/{app_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"deleted" in r.data
    assert _load(app, app_id) is None


def test_list_shows_drafts_and_filters(processor_client):
    app_id = _new_draft(processor_client)
    r = processor_client.get("/applications")
    assert r.status_code == 200
    assert app_id.encode() in r.data

    r = processor_client.get("/applications?status=approved")
    assert b"No applications found." in r.data
