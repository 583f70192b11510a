from conftest import auth_headers
from models import CapsuleActivity, CapsuleCollaborator


def add_file(client, user, capsule_id, **fields):
    body = {"capsuleId": capsule_id, "fileName": "scan.pdf", "fileType": "application/pdf", "fileSize": 2048}
    body.update(fields)
    return client.post("/api/capsule-files", json=body, headers=auth_headers(user))


def test_register_file_defaults(client, owner, create_capsule):
    capsule = create_capsule(owner)
    response = add_file(client, owner, capsule["id"], fileName="my photo.jpg")
    assert response.status_code == 201
    body = response.json()
    assert body["uploadedBy"] == owner.id
    assert body["fileUrl"] == f"/uploads/placeholder/{body['id']}/my%20photo.jpg"


def test_register_file_validation(client, owner, create_capsule):
    capsule = create_capsule(owner)
    zero = add_file(client, owner, capsule["id"], fileSize=0)
    assert zero.status_code == 400
    assert zero.json()["code"] == "INVALID_FILE_SIZE"

    text_size = add_file(client, owner, capsule["id"], fileSize="12")
    assert text_size.json()["code"] == "INVALID_FILE_SIZE"

    bad_capsule = add_file(client, owner, "nope")
    assert bad_capsule.json()["code"] == "INVALID_UUID"

    unknown = add_file(client, owner, "8c1d3e0a-3c55-4a8e-9a43-2f4f6f0e5b11")
    assert unknown.status_code == 400
    assert unknown.json()["code"] == "CAPSULE_NOT_FOUND"


def test_cannot_register_on_behalf_of_someone_else(client, owner, stranger, create_capsule):
    capsule = create_capsule(owner)
    response = add_file(client, owner, capsule["id"], uploadedBy=stranger.id)
    assert response.status_code == 403


def test_stranger_cannot_add_files(client, owner, stranger, create_capsule):
    capsule = create_capsule(owner)
    response = add_file(client, stranger, capsule["id"])
    assert response.status_code == 403
    assert response.json()["code"] == "ACCESS_DENIED"


def test_emergency_files_listed_anonymously(client, owner, create_capsule):
    capsule = create_capsule(owner, isEmergencyAccessible=True)
    file_id = add_file(client, owner, capsule["id"]).json()["id"]

    listing = client.get("/api/capsule-files", params={"capsuleId": capsule["id"]})
    assert listing.status_code == 200
    assert [f["id"] for f in listing.json()] == [file_id]

    single = client.get("/api/capsule-files", params={"id": file_id})
    assert single.status_code == 200
    assert single.json()["fileName"] == "scan.pdf"


def test_private_files_need_access(client, owner, stranger, create_capsule):
    capsule = create_capsule(owner)
    file_id = add_file(client, owner, capsule["id"]).json()["id"]

    assert client.get("/api/capsule-files", params={"id": file_id}).status_code == 401
    denied = client.get("/api/capsule-files", params={"id": file_id}, headers=auth_headers(stranger))
    assert denied.status_code == 403
    assert denied.json()["code"] == "ACCESS_DENIED"

    # without capsuleId the listing only covers visible capsules
    assert client.get("/api/capsule-files", headers=auth_headers(stranger)).json() == []
    assert len(client.get("/api/capsule-files", headers=auth_headers(owner)).json()) == 1


def test_unknown_file(client, owner):
    response = client.get(
        "/api/capsule-files", params={"id": "8c1d3e0a-3c55-4a8e-9a43-2f4f6f0e5b11"}, headers=auth_headers(owner),
    )
    assert response.status_code == 404
    assert response.json()["code"] == "FILE_NOT_FOUND"


def test_collaborator_files_visible(client, db, owner, stranger, create_capsule):
    capsule = create_capsule(owner)
    add_file(client, owner, capsule["id"])
    db.add(CapsuleCollaborator(capsule_id=capsule["id"], user_id=stranger.id, permission="view", invited_by=owner.id))
    db.commit()

    response = client.get("/api/capsule-files", headers=auth_headers(stranger))
    assert len(response.json()) == 1


def test_rename_and_delete_file(client, db, owner, create_capsule):
    capsule = create_capsule(owner)
    file_id = add_file(client, owner, capsule["id"]).json()["id"]
    headers = auth_headers(owner)

    renamed = client.put("/api/capsule-files", params={"id": file_id}, json={"fileName": "renamed.pdf"}, headers=headers)
    assert renamed.status_code == 200
    assert renamed.json()["fileName"] == "renamed.pdf"

    deleted = client.delete("/api/capsule-files", params={"id": file_id}, headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["file"]["id"] == file_id
    assert client.get("/api/capsule-files", params={"id": file_id}, headers=headers).status_code == 404

    types = [a.activity_type for a in db.query(CapsuleActivity).filter_by(capsule_id=capsule["id"])]
    assert sorted(types) == ["created", "file_added", "file_removed"]
