from conftest import auth_headers
from models import Capsule, CapsuleCollaborator, CapsuleFile, Notification, User
from seed import DEMO_PASSWORD, seed


def test_seed_populates_every_table_once(db):
    assert seed(db) is True
    assert db.query(User).count() == 3
    assert db.query(Capsule).count() == 5
    assert db.query(CapsuleFile).count() == 7
    assert db.query(CapsuleCollaborator).count() == 4
    assert db.query(Notification).count() > 0

    assert seed(db) is False
    assert db.query(User).count() == 3


def test_seeded_emergency_capsule_and_login(client, db):
    seed(db)
    health = db.query(Capsule).filter_by(title="Family Medical History").one()
    assert client.get(f"/api/capsules/{health.id}").status_code == 200

    login = client.post("/api/auth/login", data={"email": "sarah.smith@family.com", "password": DEMO_PASSWORD})
    assert login.status_code == 200

    john = db.query(User).filter_by(email="john.doe@example.com").one()
    titles = {c["title"] for c in client.get("/api/capsules", headers=auth_headers(john)).json()}
    assert titles == {"Our Wedding Day - 2024", "Emma's 1st Birthday"}
