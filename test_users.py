from conftest import auth_headers
from models import Capsule, CapsuleActivity, CapsuleCollaborator, CapsuleFile, Notification, User


# ----------------------------
# Registration / login
# ----------------------------
def test_register_and_login(client):
    response = client.post("/api/users", json={
        "email": "Ada@Example.com", "fullName": "Ada Lovelace", "password": "analytical",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "ada@example.com"
    assert body["role"] == "user"
    assert "password" not in body and "hashedPassword" not in body

    login = client.post("/api/auth/login", data={"email": "ada@example.com", "password": "analytical"})
    assert login.status_code == 200
    token = login.json()["accessToken"]
    assert login.json()["tokenType"] == "bearer"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["id"] == body["id"]


def test_register_duplicate_email(client):
    client.post("/api/users", json={"email": "dup@example.com", "fullName": "One"})
    response = client.post("/api/users", json={"email": "dup@example.com", "fullName": "Two"})
    assert response.status_code == 400
    assert response.json()["code"] == "EMAIL_EXISTS"


def test_register_validation(client):
    assert client.post("/api/users", json={"fullName": "x"}).json()["code"] == "MISSING_EMAIL"
    assert client.post("/api/users", json={"email": "not-an-email", "fullName": "x"}).json()["code"] == "INVALID_EMAIL"
    assert client.post("/api/users", json={"email": "a..b@example.com", "fullName": "x"}).json()["code"] == "INVALID_EMAIL"
    assert client.post("/api/users", json={"email": "a@example.com", "fullName": "  "}).json()["code"] == "MISSING_FULL_NAME"
    assert client.post("/api/users", json={
        "email": "a@example.com", "fullName": "x", "role": "superuser",
    }).json()["code"] == "INVALID_ROLE"


def test_login_wrong_password(client, owner):
    response = client.post("/api/auth/login", data={"email": owner.email, "password": "wrong-password"})
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_CREDENTIALS"


def test_bad_token_is_anonymous(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


# ----------------------------
# Read / update
# ----------------------------
def test_get_and_search_users(client, owner, stranger):
    headers = auth_headers(owner)
    single = client.get("/api/users", params={"id": stranger.id}, headers=headers)
    assert single.json()["fullName"] == "Stranger"

    found = client.get("/api/users", params={"search": "owner"}, headers=headers).json()
    assert [u["id"] for u in found] == [owner.id]

    bad_role = client.get("/api/users", params={"role": "pirate"}, headers=headers)
    assert bad_role.status_code == 400
    assert bad_role.json()["code"] == "INVALID_ROLE_FILTER"

    assert client.get("/api/users", params={"id": "bad id"}, headers=headers).json()["code"] == "INVALID_UUID"


def test_update_self_only(client, owner, stranger):
    updated = client.put("/api/users", params={"id": owner.id}, json={"fullName": "New Name"}, headers=auth_headers(owner))
    assert updated.status_code == 200
    assert updated.json()["fullName"] == "New Name"

    other = client.put("/api/users", params={"id": stranger.id}, json={"fullName": "Hacked"}, headers=auth_headers(owner))
    assert other.status_code == 403

    taken = client.put("/api/users", params={"id": owner.id}, json={"email": stranger.email}, headers=auth_headers(owner))
    assert taken.json()["code"] == "EMAIL_EXISTS"


# ----------------------------
# Delete
# ----------------------------
def test_delete_account_cascades(client, db, owner, stranger, create_capsule):
    owner_id = owner.id
    mine = create_capsule(owner, title="Mine")
    theirs = create_capsule(stranger, title="Theirs")
    stranger_headers = auth_headers(stranger)
    owner_headers = auth_headers(owner)

    # owner leaves traces on the stranger's capsule
    client.post("/api/capsule-collaborators", json={
        "capsuleId": theirs["id"], "userId": owner.id, "permission": "edit",
    }, headers=stranger_headers)
    client.post("/api/capsule-files", json={
        "capsuleId": theirs["id"], "fileName": "a.png", "fileType": "image/png", "fileSize": 10,
    }, headers=owner_headers)
    # and the stranger is invited to the owner's capsule
    client.post("/api/capsule-collaborators", json={
        "capsuleId": mine["id"], "userId": stranger.id,
    }, headers=owner_headers)

    assert client.delete("/api/users", params={"id": stranger.id}, headers=owner_headers).status_code == 403

    response = client.delete("/api/users", params={"id": owner.id}, headers=owner_headers)
    assert response.status_code == 200
    assert response.json()["user"]["id"] == owner.id

    db.expire_all()
    assert db.get(User, owner_id) is None
    assert db.get(Capsule, mine["id"]) is None
    assert db.get(Capsule, theirs["id"]) is not None
    assert db.query(CapsuleCollaborator).count() == 0
    assert db.query(CapsuleFile).count() == 0
    assert db.query(CapsuleActivity).filter_by(user_id=owner_id).count() == 0
    assert db.query(Notification).filter_by(user_id=owner_id).count() == 0
    # the stranger's invitation notification survives without its capsule
    leftover = db.query(Notification).filter_by(user_id=stranger.id).one()
    assert leftover.capsule_id is None
