"""Shared test fixtures for the zero-trust test suite."""

import os
import uuid

os.environ.setdefault("FLASK_NO_SCHEDULER", "1")

import pytest

from zerotrust import create_app
from zerotrust.extensions import db
from zerotrust.models import Node, Server

from .helpers import FakeAgent, RecordingNotifier


@pytest.fixture
def app():
    """Flask app on an in-memory SQLite database, schema created from the models."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "ZEROTRUST_MAX_WORKERS": 4,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_node(app):
    def _make(name="node-1", **kwargs):
        node = Node(
            name=name,
            fqdn=kwargs.pop("fqdn", f"{name}.example.com"),
            daemon_listen=kwargs.pop("daemon_listen", 8080),
            scheme=kwargs.pop("scheme", "https"),
            daemon_token=kwargs.pop("daemon_token", "node-token"),
            **kwargs,
        )
        db.session.add(node)
        db.session.commit()
        return node
    return _make


@pytest.fixture
def make_server(app, make_node):
    default_node = {}

    def _make(name="server", node=None, node_id=None, **kwargs):
        if node_id is None:
            if node is None:
                if "node" not in default_node:
                    default_node["node"] = make_node()
                node = default_node["node"]
            node_id = node.id
        server = Server(uuid=str(uuid.uuid4()), name=name, node_id=node_id, **kwargs)
        db.session.add(server)
        db.session.commit()
        return server
    return _make


@pytest.fixture
def fake_agent():
    return FakeAgent()


@pytest.fixture
def notifier():
    return RecordingNotifier()
