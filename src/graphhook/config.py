"""Application configuration via environment variables."""

from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic_settings import BaseSettings

from graphhook.errors.exceptions import ConfigurationError

DEFAULT_EVENT_TYPE_PREFIX = "Microsoft.Graph.CalendarEvent"


class Settings(BaseSettings):
    # Decryption of rich notifications
    private_key_pem: str | None = None
    private_key_path: str | None = None
    private_key_password: str | None = None
    encryption_cert_id: str = "v1"

    # Event Grid sink
    eventgrid_topic_endpoint: str | None = None
    eventgrid_topic_key: str | None = None
    publish_timeout_seconds: float = 10.0
    publish_max_retries: int = 3

    # Outbound events
    event_type_prefix: str = DEFAULT_EVENT_TYPE_PREFIX

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "info"
    json_logs: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "GRAPHHOOK_",
    }

    def load_private_key_pem(self) -> str | None:
        """Return the PEM text, reading ``private_key_path`` when no inline PEM is set."""
        if self.private_key_pem:
            # Env vars often carry escaped newlines
            return self.private_key_pem.replace("\\n", "\n")
        if self.private_key_path:
            path = Path(self.private_key_path)
            try:
                return path.read_text(encoding="utf-8")
            except OSError as exc:
                raise ConfigurationError(
                    f"Cannot read private key file '{path}'", {"error": str(exc)}
                ) from exc
        return None


@dataclass(frozen=True)
class SinkCredentials:
    """Event Grid topic endpoint and access key."""

    endpoint: str | None = None
    key: str | None = None

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.key)


@dataclass(frozen=True)
class RelayConfig:
    """Immutable runtime configuration shared read-only by every notification.

    Built once at startup; the processor and publisher never consult the
    environment themselves.
    """

    private_key: rsa.RSAPrivateKey | None
    active_certificate_id: str
    sink: SinkCredentials = SinkCredentials()
    event_type_prefix: str = DEFAULT_EVENT_TYPE_PREFIX
    publish_timeout_seconds: float = 10.0
    publish_max_retries: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> "RelayConfig":
        pem = settings.load_private_key_pem()
        password = settings.private_key_password
        private_key = (
            load_private_key(pem, password.encode("utf-8") if password else None)
            if pem
            else None
        )
        return cls(
            private_key=private_key,
            active_certificate_id=settings.encryption_cert_id,
            sink=SinkCredentials(
                endpoint=settings.eventgrid_topic_endpoint,
                key=settings.eventgrid_topic_key,
            ),
            event_type_prefix=settings.event_type_prefix,
            publish_timeout_seconds=settings.publish_timeout_seconds,
            publish_max_retries=settings.publish_max_retries,
        )


def load_private_key(pem: str | bytes, password: bytes | None = None) -> rsa.RSAPrivateKey:
    """Parse a PEM-encoded RSA private key.

    Raises:
        ConfigurationError: The PEM is malformed, encrypted with a different
            password, or holds a non-RSA key.
    """
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    try:
        key = serialization.load_pem_private_key(data, password=password)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError("Private key PEM could not be loaded", {"error": str(exc)}) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError(
            "Private key must be an RSA key", {"key_type": type(key).__name__}
        )
    return key


settings = Settings()
