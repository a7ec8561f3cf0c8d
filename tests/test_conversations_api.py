from conftest import auth_headers, seed_conversation, seed_message, seed_user
from geminichat.models import MODEL_AUTHOR_ID, Conversation, Message
from geminichat.services.conversation_window import encode_window_id

ALICE = "auth0|alice"
BOB = "auth0|bob"


def test_requires_authentication(client):
    res = client.get("/api/conversations")
    assert res.status_code == 401
    assert res.json() == {"detail": "Not authenticated"}


def test_invalid_token_is_rejected(client):
    res = client.get("/api/conversations", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid or expired token"


def test_unsynced_user_is_unauthorized(client):
    res = client.get("/api/conversations", headers=auth_headers("auth0|ghost"))
    assert res.status_code == 401


def test_create_and_get(client, db):
    seed_user(db)
    res = client.post("/api/conversations", json={"title": "Trip plans"}, headers=auth_headers(ALICE))
    assert res.status_code == 201
    created = res.json()
    assert created["title"] == "Trip plans"
    assert created["archived"] is False

    res = client.get(f"/api/conversations/{created['id']}", headers=auth_headers(ALICE))
    assert res.status_code == 200
    assert res.json()["id"] == created["id"]


def test_blank_title_is_rejected(client, db):
    seed_user(db)
    res = client.post("/api/conversations", json={"title": "   "}, headers=auth_headers(ALICE))
    assert res.status_code == 400
    res = client.post("/api/conversations", json={"title": ""}, headers=auth_headers(ALICE))
    assert res.status_code == 422


def test_list_is_scoped_filtered_and_counted(client, db):
    alice = seed_user(db)
    bob = seed_user(db, sub=BOB, email="bob@example.com")
    recipes = seed_conversation(db, alice, title="Recipes")
    seed_message(db, recipes, alice.id, "How do I bake bread?", minutes_ago=3)
    seed_message(db, recipes, MODEL_AUTHOR_ID, "Start with flour.", minutes_ago=2)
    archived = seed_conversation(db, alice, title="Old stuff", archived=True)
    seed_conversation(db, bob, title="Bob's secret")

    res = client.get("/api/conversations", headers=auth_headers(ALICE))
    assert res.status_code == 200
    by_id = {c["id"]: c for c in res.json()}
    assert set(by_id) == {recipes.id, archived.id}
    assert by_id[recipes.id]["message_count"] == 2
    assert by_id[archived.id]["message_count"] == 0

    res = client.get("/api/conversations?status=active", headers=auth_headers(ALICE))
    assert [c["id"] for c in res.json()] == [recipes.id]

    res = client.get("/api/conversations?status=archived", headers=auth_headers(ALICE))
    assert [c["id"] for c in res.json()] == [archived.id]

    res = client.get("/api/conversations?status=deleted", headers=auth_headers(ALICE))
    assert res.status_code == 422

    # Search matches message content, case-insensitively
    res = client.get("/api/conversations?q=FLOUR", headers=auth_headers(ALICE))
    assert [c["id"] for c in res.json()] == [recipes.id]

    res = client.get("/api/conversations?sort=title", headers=auth_headers(ALICE))
    assert [c["title"] for c in res.json()] == ["Old stuff", "Recipes"]


def test_rename(client, db):
    alice = seed_user(db)
    conv = seed_conversation(db, alice, title="Untitled")
    before = conv.last_active

    res = client.patch(
        f"/api/conversations/{conv.id}/title", json={"title": "Renamed"}, headers=auth_headers(ALICE)
    )
    assert res.status_code == 200
    assert res.json()["title"] == "Renamed"
    db.refresh(conv)
    assert conv.title == "Renamed"
    assert conv.last_active >= before


def test_archive_is_idempotent(client, db):
    alice = seed_user(db)
    conv = seed_conversation(db, alice)

    for _ in range(2):
        res = client.patch(
            f"/api/conversations/{conv.id}/archive", json={"archived": True}, headers=auth_headers(ALICE)
        )
        assert res.status_code == 200
        assert res.json()["archived"] is True
        db.refresh(conv)
        assert conv.archived is True

    res = client.patch(
        f"/api/conversations/{conv.id}/archive", json={"archived": False}, headers=auth_headers(ALICE)
    )
    assert res.json()["archived"] is False


def test_delete_removes_conversation_and_messages(client, db):
    alice = seed_user(db)
    conv = seed_conversation(db, alice)
    seed_message(db, conv, alice.id, "hi", minutes_ago=1)

    res = client.delete(f"/api/conversations/{conv.id}", headers=auth_headers(ALICE))
    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert db.query(Conversation).count() == 0
    assert db.query(Message).count() == 0


def test_other_users_conversation_is_not_found(client, db):
    seed_user(db)
    bob = seed_user(db, sub=BOB, email="bob@example.com")
    bobs = seed_conversation(db, bob, title="Bob's")
    seed_message(db, bobs, bob.id, "secret", minutes_ago=1)
    headers = auth_headers(ALICE)

    assert client.delete(f"/api/conversations/{bobs.id}", headers=headers).status_code == 404
    assert client.get(f"/api/conversations/{bobs.id}", headers=headers).status_code == 404
    assert client.get(f"/api/conversations/{bobs.id}/messages", headers=headers).status_code == 404
    res = client.patch(f"/api/conversations/{bobs.id}/title", json={"title": "mine"}, headers=headers)
    assert res.status_code == 404
    res = client.patch(f"/api/conversations/{bobs.id}/archive", json={"archived": True}, headers=headers)
    assert res.status_code == 404

    db.refresh(bobs)
    assert bobs.title == "Bob's"
    assert bobs.archived is False
    assert [m.content for m in db.query(Message).filter(Message.conversation_id == bobs.id)] == ["secret"]


def test_messages_in_order(client, db):
    alice = seed_user(db)
    conv = seed_conversation(db, alice)
    seed_message(db, conv, alice.id, "first", minutes_ago=3)
    seed_message(db, conv, MODEL_AUTHOR_ID, "second", minutes_ago=2)

    res = client.get(f"/api/conversations/{conv.id}/messages", headers=auth_headers(ALICE))
    assert res.status_code == 200
    body = res.json()
    assert [m["content"] for m in body] == ["first", "second"]
    assert [m["author_id"] for m in body] == [alice.id, MODEL_AUTHOR_ID]
    assert body[0]["type"] == "text"


def test_window_id_filters_messages(client, db):
    alice = seed_user(db)
    conv = seed_conversation(db, alice)
    early = seed_message(db, conv, alice.id, "morning", minutes_ago=120)
    seed_message(db, conv, MODEL_AUTHOR_ID, "morning reply", minutes_ago=119)
    seed_message(db, conv, alice.id, "evening", minutes_ago=1)

    window_id = encode_window_id(conv.id, early.created_at)
    res = client.get(f"/api/conversations/{window_id}/messages", headers=auth_headers(ALICE))
    assert res.status_code == 200
    assert [m["content"] for m in res.json()] == ["morning", "morning reply"]

    res = client.get(f"/api/conversations/{conv.id}_garbage/messages", headers=auth_headers(ALICE))
    assert res.status_code == 400


def test_windows_listing(client, db):
    alice = seed_user(db)
    conv = seed_conversation(db, alice)
    early = seed_message(db, conv, alice.id, "morning", minutes_ago=120)
    seed_message(db, conv, MODEL_AUTHOR_ID, "morning reply", minutes_ago=119)
    late = seed_message(db, conv, alice.id, "evening", minutes_ago=1)

    res = client.get(f"/api/conversations/{conv.id}/windows", headers=auth_headers(ALICE))
    assert res.status_code == 200
    windows = res.json()
    assert [w["message_count"] for w in windows] == [2, 1]
    assert windows[0]["id"] == encode_window_id(conv.id, early.created_at)
    assert windows[1]["id"] == encode_window_id(conv.id, late.created_at)
    assert windows[0]["started_at"] < windows[0]["ended_at"]
