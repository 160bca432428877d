from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from pms import create_app
from pms.core.config import Config
from pms.core.extensions import db
from pms.core.models import Party, Property, User, seed_demo_data


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    APP_URL = "https://pms.test"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.config["DOCUMENT_STORAGE_DIR"] = str(tmp_path / "documents")
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def demo_ids(app):
    return {
        "officer": User.query.filter_by(email="officer@pms.local").first().id,
        "inspector": User.query.filter_by(email="inspector@pms.local").first().id,
        "available_property": Property.query.filter_by(parcel_no="PRC-0001").first().id,
        "commercial_property": Property.query.filter_by(parcel_no="PRC-0002").first().id,
        "allotted_property": Property.query.filter_by(parcel_no="PRC-0003").first().id,
        "asha": Party.query.filter_by(name="Asha Verma").first().id,
        "rohit": Party.query.filter_by(name="Rohit Mehra").first().id,
        "builder": Party.query.filter_by(name="Sunrise Builders Pvt Ltd").first().id,
    }


def _login_as(client, email: str, password: str):
    return client.post("/auth/login", json={"email": email, "password": password})


@pytest.fixture
def login_admin(client):
    def _login():
        return _login_as(client, "admin@pms.local", "admin123")

    return _login


@pytest.fixture
def login_officer(client):
    def _login():
        return _login_as(client, "officer@pms.local", "officer123")

    return _login


@pytest.fixture
def login_inspector(client):
    def _login():
        return _login_as(client, "inspector@pms.local", "inspector123")

    return _login
