import pytest

from survey_review import create_app
from survey_review.extensions import db as _db
from survey_review.security import ALL_PERMISSIONS, PERM_REVIEW, PERM_VIEW, ReviewContext
from survey_review.seed import create_user, seed_demo_data

PASSWORD = "secret-pass"


@pytest.fixture
def app():
    app = create_app("config.TestConfig")
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def survey_id(app):
    return seed_demo_data().id


@pytest.fixture
def actor():
    return ReviewContext(user_id=None, username="tester", permissions=frozenset(ALL_PERMISSIONS))


def _login(client, username):
    response = client.post("/auth/login", data={"username": username, "password": PASSWORD})
    assert response.status_code == 302
    return client


@pytest.fixture
def approver_client(app, client):
    create_user("approver", PASSWORD, permissions=ALL_PERMISSIONS, full_name="Ana Revisora")
    return _login(client, "approver")


@pytest.fixture
def reviewer_client(app, client):
    create_user("reviewer", PASSWORD, permissions=(PERM_VIEW, PERM_REVIEW))
    return _login(client, "reviewer")


@pytest.fixture
def viewer_client(app, client):
    create_user("viewer", PASSWORD, permissions=(PERM_VIEW,))
    return _login(client, "viewer")
