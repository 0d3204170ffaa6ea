"""
Exchange Gateway - Request Signing.

============================================================
PURPOSE
============================================================
Turn (endpoint template, parameters, credentials) into a
fully-formed request: URL, headers, body.

SCHEMES:
- public        No signature; unconsumed params -> query string
- token         Static API token header; JSON body
- hmac          Nonce + HMAC digest in headers; JSON body
- message_type  Path is a message-type code injected into the
                payload envelope, then signed by an inner scheme

A venue picks a scheme by name and supplies only its own
fields (header names, token format, digest base string).

SAFETY:
- Credentials are checked before anything is built
- Unbound path placeholders are configuration errors

============================================================
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type
from urllib.parse import urlencode

from .config import Credentials, EndpointTemplate, required_placeholders
from .errors import ConfigurationError, MissingCredentials


logger = logging.getLogger(__name__)


# ============================================================
# SIGNED REQUEST
# ============================================================

@dataclass
class SignedRequest:
    """Request ready for the transport."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


# ============================================================
# NONCE
# ============================================================

class NonceGenerator:
    """
    Millisecond nonce that never repeats within one instance.

    Two calls in the same millisecond yield consecutive values.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last = 0

    def __call__(self) -> str:
        value = max(int(self._clock() * 1000), self._last + 1)
        self._last = value
        return str(value)


# ============================================================
# PATH HELPERS
# ============================================================

def implode_path(path: str, params: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """
    Substitute ``{placeholder}`` tokens from params.

    Args:
        path: Path template
        params: Call parameters

    Returns:
        (bound path, parameters not consumed by the path)

    Raises:
        ConfigurationError: If a placeholder has no value
    """
    names = required_placeholders(path)
    missing = [name for name in names if params.get(name) is None]
    if missing:
        raise ConfigurationError(f"Unbound placeholders {missing} in path '{path}'")

    bound = path
    for name in names:
        bound = bound.replace("{" + name + "}", str(params[name]))

    remaining = {k: v for k, v in params.items() if k not in names}
    return bound, remaining


def join_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def encode_query(query: Mapping[str, Any]) -> str:
    return urlencode({k: v for k, v in query.items() if v is not None})


def json_body(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


# ============================================================
# STRATEGY BASE
# ============================================================

class SigningStrategy(ABC):
    """
    Base signing strategy.

    Subclasses implement ``_sign`` on an already-bound path.
    """

    name: str = ""
    requires_key: bool = False
    requires_secret: bool = False

    def check_credentials(
        self,
        credentials: Optional[Credentials],
        venue_id: Optional[str] = None,
    ) -> None:
        """
        Raises:
            MissingCredentials: If the scheme needs credentials that are absent
        """
        if not (self.requires_key or self.requires_secret):
            return

        missing = []
        if self.requires_key and (credentials is None or not credentials.has_key()):
            missing.append("api_key")
        if self.requires_secret and (credentials is None or not credentials.has_secret()):
            missing.append("secret")
        if missing:
            raise MissingCredentials(
                f"'{self.name}' signing requires {', '.join(missing)}",
                venue_id=venue_id,
            )

    def sign(
        self,
        base_url: str,
        template: EndpointTemplate,
        params: Optional[Mapping[str, Any]] = None,
        credentials: Optional[Credentials] = None,
        venue_id: Optional[str] = None,
    ) -> SignedRequest:
        """
        Build the final request.

        Raises:
            MissingCredentials: Before anything else, if required
            ConfigurationError: If a path placeholder is unbound
        """
        self.check_credentials(credentials, venue_id)
        path, query = implode_path(template.path, dict(params or {}))
        return self._sign(template.method.upper(), base_url, path, query, credentials)

    @abstractmethod
    def _sign(
        self,
        method: str,
        base_url: str,
        path: str,
        query: Dict[str, Any],
        credentials: Optional[Credentials],
    ) -> SignedRequest:
        pass


# ============================================================
# PUBLIC
# ============================================================

class PublicSigner(SigningStrategy):
    """Unauthenticated: unconsumed params become the query string."""

    name = "public"

    def _sign(self, method, base_url, path, query, credentials):
        url = join_url(base_url, path)
        if query:
            url += "?" + encode_query(query)
        return SignedRequest(method=method, url=url)


# ============================================================
# TOKEN HEADER
# ============================================================

class TokenHeaderSigner(SigningStrategy):
    """
    Static API token in a header, no per-request signature.

    GET parameters go to the query string, everything else is
    sent as a JSON body.
    """

    name = "token"
    requires_key = True

    def __init__(
        self,
        header_name: str = "Authorization",
        token_format: str = "Bearer {api_key}",
    ):
        self.header_name = header_name
        self.token_format = token_format

    def _sign(self, method, base_url, path, query, credentials):
        url = join_url(base_url, path)
        body = None
        if method == "GET":
            if query:
                url += "?" + encode_query(query)
        else:
            body = json_body(query)

        headers = {
            self.header_name: self.token_format.format(api_key=credentials.api_key),
            "Content-Type": "application/json",
        }
        return SignedRequest(method=method, url=url, headers=headers, body=body)


# ============================================================
# HMAC TIMESTAMP
# ============================================================

class HmacTimestampSigner(SigningStrategy):
    """
    Nonce plus HMAC digest.

    Message modes:
    - "nonce":     HMAC(secret, nonce)
    - "canonical": HMAC(secret, nonce + METHOD + request_path + body)

    The digest, key and nonce go in headers; the payload is a
    JSON body (GET parameters go to the query string instead).
    """

    name = "hmac"
    requires_key = True
    requires_secret = True

    DIGESTS = {
        "sha256": hashlib.sha256,
        "sha384": hashlib.sha384,
        "sha512": hashlib.sha512,
    }

    def __init__(
        self,
        key_header: str = "APIKey",
        nonce_header: str = "Nonce",
        signature_header: str = "Signature",
        passphrase_header: Optional[str] = None,
        message: str = "nonce",
        digest: str = "sha256",
        encoding: str = "hex",
        nonce_factory: Optional[Callable[[], str]] = None,
    ):
        if message not in ("nonce", "canonical"):
            raise ConfigurationError(f"Unknown HMAC message mode: {message}")
        if digest not in self.DIGESTS:
            raise ConfigurationError(f"Unknown HMAC digest: {digest}")
        if encoding not in ("hex", "base64"):
            raise ConfigurationError(f"Unknown HMAC encoding: {encoding}")

        self.key_header = key_header
        self.nonce_header = nonce_header
        self.signature_header = signature_header
        self.passphrase_header = passphrase_header
        self.message = message
        self.digest = digest
        self.encoding = encoding
        self.nonce_factory = nonce_factory or NonceGenerator()

    def signature(self, secret: str, message: str) -> str:
        """HMAC of message keyed by secret, encoded per configuration."""
        mac = hmac.new(
            secret.encode(),
            message.encode(),
            self.DIGESTS[self.digest],
        )
        if self.encoding == "base64":
            return base64.b64encode(mac.digest()).decode()
        return mac.hexdigest()

    def _sign(self, method, base_url, path, query, credentials):
        url = join_url(base_url, path)
        body = None
        if method == "GET":
            if query:
                url += "?" + encode_query(query)
        else:
            body = json_body(query)

        nonce = str(self.nonce_factory())
        if self.message == "nonce":
            message = nonce
        else:
            request_path = url[len(base_url.rstrip("/")):]
            message = f"{nonce}{method}{request_path}{body or ''}"

        headers = {
            self.key_header: credentials.api_key,
            self.nonce_header: nonce,
            self.signature_header: self.signature(credentials.secret, message),
            "Content-Type": "application/json",
        }
        if self.passphrase_header and credentials.passphrase:
            headers[self.passphrase_header] = credentials.passphrase

        return SignedRequest(method=method, url=url, headers=headers, body=body)


# ============================================================
# MESSAGE TYPE
# ============================================================

class MessageTypeSigner(SigningStrategy):
    """
    FIX-like messaging: the path is a message-type code.

    The code (after alias lookup, e.g. "message" -> "D") is
    injected into the payload under ``type_field`` and the
    envelope is signed by the inner strategy.
    """

    name = "message_type"

    def __init__(
        self,
        inner: SigningStrategy,
        type_field: str = "MsgType",
        aliases: Optional[Mapping[str, str]] = None,
    ):
        if isinstance(inner, (PublicSigner, MessageTypeSigner)):
            raise ConfigurationError("message_type must wrap the token or hmac scheme")
        self.inner = inner
        self.type_field = type_field
        self.aliases = dict(aliases or {})
        self.requires_key = inner.requires_key
        self.requires_secret = inner.requires_secret

    def check_credentials(self, credentials, venue_id=None):
        self.inner.check_credentials(credentials, venue_id)

    def _sign(self, method, base_url, path, query, credentials):
        if method == "GET":
            raise ConfigurationError("message_type endpoints must not use GET")

        envelope: Dict[str, Any] = {self.type_field: self.aliases.get(path, path)}
        envelope.update(query)
        return self.inner._sign(method, base_url, path, envelope, credentials)


# ============================================================
# REGISTRY
# ============================================================

SIGNING_SCHEMES: Dict[str, Type[SigningStrategy]] = {
    PublicSigner.name: PublicSigner,
    TokenHeaderSigner.name: TokenHeaderSigner,
    HmacTimestampSigner.name: HmacTimestampSigner,
    MessageTypeSigner.name: MessageTypeSigner,
}


def create_signer(scheme: str, options: Optional[Mapping[str, Any]] = None) -> SigningStrategy:
    """
    Build a signing strategy from descriptor data.

    ``message_type`` takes ``inner`` (scheme name) and
    ``inner_options`` in addition to its own options.

    Raises:
        ConfigurationError: If the scheme is unknown
    """
    options = dict(options or {})
    if scheme not in SIGNING_SCHEMES:
        raise ConfigurationError(f"Unknown signing scheme: {scheme}")

    if scheme == MessageTypeSigner.name:
        inner_scheme = options.pop("inner", HmacTimestampSigner.name)
        inner = create_signer(inner_scheme, options.pop("inner_options", None))
        return MessageTypeSigner(inner, **options)

    try:
        return SIGNING_SCHEMES[scheme](**options)
    except TypeError as e:
        raise ConfigurationError(f"Invalid options for '{scheme}' signing: {e}")
