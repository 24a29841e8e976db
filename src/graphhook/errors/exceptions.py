"""Custom exception classes for the graphhook relay."""


class RelayError(Exception):
    """Base exception for graphhook."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(RelayError):
    """Required configuration (e.g. the private key) is missing or unusable."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFIGURATION_ERROR", message, details, status_code=500)


class CertificateMismatchError(RelayError):
    """Encrypted content references a certificate other than the active one."""

    def __init__(self, certificate_id: str | None, expected: str):
        super().__init__(
            "CERTIFICATE_MISMATCH",
            f"Unexpected encryption certificate id '{certificate_id}'",
            {"certificate_id": certificate_id, "expected": expected},
            status_code=422,
        )


class IntegrityError(RelayError):
    """HMAC over the ciphertext did not match the supplied signature."""

    def __init__(self, message: str = "Data signature mismatch", details=None):
        super().__init__("INTEGRITY_ERROR", message, details, status_code=422)


class DecryptionError(RelayError):
    """Asymmetric or symmetric decryption failed its padding/validity checks."""

    def __init__(self, message: str, details=None):
        super().__init__("DECRYPTION_ERROR", message, details, status_code=422)


class ParseError(RelayError):
    """A notification or its decrypted payload is not valid structured data."""

    def __init__(self, message: str, details=None):
        super().__init__("PARSE_ERROR", message, details, status_code=400)


class PublishError(RelayError):
    """The downstream event sink rejected the batch or could not be reached."""

    def __init__(self, message: str, details=None):
        super().__init__("PUBLISH_ERROR", message, details, status_code=502)
