import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from surface.app import create_app
from tests.conftest import FakeGateway


def page_event(sender, text=None, is_echo=False, **extra):
    message = {"mid": "m1"}
    if text is not None:
        message["text"] = text
    if is_echo:
        message["is_echo"] = True
    event = {"sender": {"id": sender}, "recipient": {"id": "page"}, "message": message}
    event.update(extra)
    return event


def batch(*events):
    return {"object": "page", "entry": [{"id": "page", "messaging": list(events)}]}


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def client(tmp_path, fake_gateway):
    settings = Settings(verify_token="secret", admin_psid="admin", db_path=tmp_path / "app.sqlite3")
    app = create_app(settings, gateway=fake_gateway)
    with TestClient(app) as c:
        yield c


def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.text == "FB Messenger Convo Bot running"


def test_verify_handshake(client):
    resp = client.get("/webhook", params={
        "hub.mode": "subscribe", "hub.verify_token": "secret", "hub.challenge": "1234",
    })
    assert resp.status_code == 200
    assert resp.text == "1234"


@pytest.mark.parametrize("params", [
    {"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1"},
    {"hub.verify_token": "secret", "hub.challenge": "1"},
])
def test_verify_rejects(client, params):
    assert client.get("/webhook", params=params).status_code == 403


def test_non_page_object_is_not_found(client):
    assert client.post("/webhook", json={"object": "user", "entry": []}).status_code == 404


def test_non_json_body_is_bad_request(client):
    resp = client.post("/webhook", content=b"{nope", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400


def test_message_gets_reply(client, fake_gateway):
    resp = client.post("/webhook", json=batch(page_event("42", "/nick Alice"), page_event("42", "/getnick")))
    assert resp.status_code == 200
    assert resp.text == "EVENT_RECEIVED"
    assert fake_gateway.texts_to("42") == ["Nickname set to: Alice", "Your nickname: Alice"]


def test_echo_and_postback_get_no_reply(client, fake_gateway):
    postback = {"sender": {"id": "42"}, "postback": {"payload": "GET_STARTED"}}
    resp = client.post("/webhook", json=batch(page_event("page", "hello", is_echo=True), postback))
    assert resp.status_code == 200
    assert fake_gateway.sent == []


def test_one_bad_event_does_not_sink_the_batch(client, fake_gateway):
    resp = client.post("/webhook", json=batch(
        {"sender": {"id": "bad"}, "message": "not an object"},
        {"message": {"text": "no sender"}},
        page_event("good", "hi"),
    ))
    assert resp.status_code == 200
    assert fake_gateway.texts_to("good") == ["You said: hi"]
    assert fake_gateway.texts_to("bad") == []


def test_admin_lock_flow(client):
    assert client.get("/admin/locks").json() == []

    resp = client.post("/admin/toggle-lock", json={"psid": "7", "lock": True})
    assert resp.json() == {"ok": True}

    (row,) = client.get("/admin/locks").json()
    assert row["psid"] == "7"
    assert row["name_locked"] is True
    assert row["lock_since"]

    client.post("/admin/toggle-lock", json={"psid": "7", "lock": False})
    (row,) = client.get("/admin/locks").json()
    assert row["name_locked"] is False


def test_toggle_lock_validates_body(client):
    assert client.post("/admin/toggle-lock", json={"lock": True}).status_code == 422


def test_alerts_endpoint(client, fake_gateway):
    watcher = client.app.state.watcher
    client.post("/webhook", json=batch(page_event("7", "hi")))
    client.post("/admin/toggle-lock", json={"psid": "7", "lock": True})

    fake_gateway.names["7"] = "Bob"
    client.portal.call(watcher.run_once)
    fake_gateway.names["7"] = "Robert"
    client.portal.call(watcher.run_once)

    (alert,) = client.get("/admin/alerts").json()
    assert alert["psid"] == "7"
    assert alert["old_name"] == "Bob"
    assert alert["new_name"] == "Robert"
    assert fake_gateway.texts_to("admin") == ['ALERT: User 7 changed name from "Bob" to "Robert"']


def test_admin_page(client):
    resp = client.get("/admin")
    assert resp.status_code == 200
    assert "Convo Bot Admin" in resp.text


@pytest.mark.parametrize("body", [
    {"object": "page", "entry": [1]},
    {"object": "page", "entry": [{"id": "page", "messaging": "x"}]},
    {"object": "page", "entry": [{"id": "page"}]},
])
def test_malformed_entries_are_skipped(client, fake_gateway, body):
    resp = client.post("/webhook", json=body)
    assert resp.status_code == 200
    assert fake_gateway.sent == []


def test_entry_that_is_not_a_list_is_bad_request(client, fake_gateway):
    resp = client.post("/webhook", json={"object": "page", "entry": "x"})
    assert resp.status_code == 400
    assert fake_gateway.sent == []


def test_malformed_entry_does_not_block_the_rest(client, fake_gateway):
    body = batch(page_event("42", "hi"))
    body["entry"].insert(0, "junk")
    resp = client.post("/webhook", json=body)
    assert resp.status_code == 200
    assert fake_gateway.texts_to("42") == ["You said: hi"]
