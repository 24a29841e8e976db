"""Shared test fixtures."""

import json
import os

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient

from graphhook.config import RelayConfig, SinkCredentials
from graphhook.crypto import compute_signature, encrypt_payload, wrap_key
from graphhook.crypto.encoding import encode_field
from graphhook.errors.exceptions import PublishError
from graphhook.publishing.base import EventPublisher

CERT_ID = "v1"
TOPIC_ENDPOINT = "https://topic.westeurope-1.eventgrid.azure.net/api/events"


class RecordingPublisher(EventPublisher):
    """In-memory sink that records every batch it is handed."""

    sink_type = "recording"

    def __init__(self, fail: bool = False) -> None:
        self.calls: list[list] = []
        self.fail = fail

    async def publish(self, events) -> None:
        self.calls.append(list(events))
        if self.fail:
            raise PublishError("sink rejected batch")


@pytest.fixture(scope="session")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def relay_config(private_key):
    return RelayConfig(
        private_key=private_key,
        active_certificate_id=CERT_ID,
        sink=SinkCredentials(endpoint=TOPIC_ENDPOINT, key="topic-key"),
    )


@pytest.fixture
def encrypt(private_key):
    """Build an ``encryptedContent`` dict the way Graph does.

    ``resource`` may be a dict (JSON-encoded) or raw plaintext bytes.
    """

    def _encrypt(resource, *, key: bytes | None = None, cert_id: str = CERT_ID) -> dict:
        symmetric_key = key or os.urandom(32)
        plaintext = resource if isinstance(resource, bytes) else json.dumps(resource).encode("utf-8")
        ciphertext = encrypt_payload(symmetric_key, plaintext)
        return {
            "dataKey": encode_field(wrap_key(symmetric_key, private_key.public_key())),
            "data": encode_field(ciphertext),
            "dataSignature": encode_field(compute_signature(symmetric_key, ciphertext)),
            "encryptionCertificateId": cert_id,
            "encryptionCertificateThumbprint": "0A1B2C3D",
        }

    return _encrypt


@pytest.fixture
def notification():
    """Build a raw notification item; pass ``encrypted`` for rich notifications."""

    def _notification(
        subscription_id: str = "sub1",
        resource: str | None = "AAMkAGI2TGuLAAA=",
        change_type: str | None = "updated",
        encrypted: dict | None = None,
        resource_data: dict | None = None,
    ) -> dict:
        item: dict = {"subscriptionId": subscription_id, "clientState": "secret"}
        if resource is not None:
            item["resource"] = resource
        if change_type is not None:
            item["changeType"] = change_type
        if encrypted is not None:
            item["encryptedContent"] = encrypted
        if resource_data is not None:
            item["resourceData"] = resource_data
        return item

    return _notification


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def failing_publisher():
    return RecordingPublisher(fail=True)


@pytest.fixture
def app(relay_config, publisher):
    """Create a test application with explicit relay state (lifespan is not run)."""
    from graphhook.main import create_app
    from graphhook.services.processor import NotificationProcessor

    _app = create_app()
    _app.state.relay_config = relay_config
    _app.state.processor = NotificationProcessor(relay_config)
    _app.state.publisher = publisher
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
