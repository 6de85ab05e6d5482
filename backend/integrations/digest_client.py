# backend/integrations/digest_client.py
"""
HTTP Digest Authentication client (RFC 2617, MD5 / qop=auth)

Wraps a requests Session. The first request goes out unauthenticated; a 401
challenge is parsed, and the request is resent once with an Authorization
header. Later requests reuse the realm/nonce pre-emptively with an
incrementing nonce-count.

Each camera client owns its own DigestClient.
"""

import hashlib
import logging
import re
import secrets
import threading
from typing import Dict, Optional, Tuple, Union
from urllib.parse import urlsplit

import requests

from errors import CameraTransportError

logger = logging.getLogger(__name__)

CHALLENGE_FIELDS = ("nonce", "realm", "qop")
DIGEST_SCHEME = re.compile(r"(?:^|,)\s*digest\s+", re.IGNORECASE)


def md5_hex(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def new_cnonce() -> str:
    """8 random bytes, hex-encoded, truncated to 16 characters"""
    return secrets.token_hex(8)[:16]


def compute_digest_response(
    username: str,
    realm: str,
    password: str,
    method: str,
    uri: str,
    nonce: str,
    nonce_count: int,
    cnonce: str,
    qop: str
) -> str:
    """Digest ``response`` value for one request"""
    ha1 = md5_hex(f"{username}:{realm}:{password}")
    ha2 = md5_hex(f"{method}:{uri}")
    if not qop:
        # RFC 2069 compatibility: server sent no qop
        return md5_hex(f"{ha1}:{nonce}:{ha2}")
    return md5_hex(f"{ha1}:{nonce}:{nonce_count:08x}:{cnonce}:{qop}:{ha2}")


def parse_challenge(header: str) -> Dict[str, str]:
    """
    Extract nonce, realm and qop from a WWW-Authenticate header.

    Servers offering several schemes may list Digest after another one, as
    in `Basic realm="x", Digest realm="y", nonce="z"`. Parsing starts at the
    Digest scheme and stops at the next scheme. The parameters are split on
    commas and the first occurrence of each field wins. A quoted multi-valued
    qop ("auth,auth-int") yields its first token.
    """
    match = DIGEST_SCHEME.search(header)
    if match:
        header = header[match.end():]

    result: Dict[str, str] = {}
    for part in header.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        if " " in key:
            # "<scheme> <param>" starts the next challenge
            break
        if key in CHALLENGE_FIELDS and key not in result:
            result[key] = value.strip().strip('"')
    return result


def request_uri(url: str) -> str:
    """Path and query of a URL, as sent on the request line"""
    parts = urlsplit(url)
    uri = parts.path or "/"
    if parts.query:
        uri = f"{uri}?{parts.query}"
    return uri


class DigestClient:
    """
    Requests wrapper adding Digest authentication.

    State (realm, nonce, qop, nonce-count) changes after every 401
    challenge and every authenticated request; the instance lock keeps
    those updates consistent.
    """

    def __init__(
        self,
        username: str,
        password: str,
        session: Optional[requests.Session] = None,
        timeout: Union[float, Tuple[float, float], None] = None
    ):
        self.username = username
        self.password = password
        self.session = session or requests.Session()
        self.timeout = timeout

        self.snonce = ""
        self.realm = ""
        self.qop = ""
        self.nonce_count = 0

        self._lock = threading.Lock()

    def do(self, request: requests.Request, stream: bool = False) -> requests.Response:
        """
        Send ``request``, answering one Digest challenge if the camera asks.

        Raises:
            CameraTransportError: the request (or its retry) failed on the wire
        """
        prepared = request.prepare()
        if self.snonce:
            prepared.headers["Authorization"] = self.authorization(prepared.method, prepared.url)

        response = self._send(prepared, stream)
        if response.status_code != 401:
            return response

        challenge = response.headers.get("WWW-Authenticate")
        if not challenge:
            return response

        # We return the response of the retry, so release this one
        response.close()
        self.update_challenge(challenge)

        authed = request.prepare()
        authed.headers["Authorization"] = self.authorization(authed.method, authed.url)
        return self._send(authed, stream)

    def get(self, url: str, stream: bool = False, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        return self.do(requests.Request("GET", url, headers=headers or {}), stream=stream)

    def update_challenge(self, header: str) -> None:
        parts = parse_challenge(header)
        with self._lock:
            self.snonce = parts.get("nonce", "")
            self.realm = parts.get("realm", "")
            self.qop = parts.get("qop", "")
        logger.debug(f"Digest challenge received (realm={self.realm}, qop={self.qop})")

    def authorization(self, method: str, url: str) -> str:
        """Build the Authorization header for the next request"""
        uri = request_uri(url)
        cnonce = new_cnonce()
        with self._lock:
            self.nonce_count += 1
            nonce_count = self.nonce_count
            realm, nonce, qop = self.realm, self.snonce, self.qop

        response = compute_digest_response(
            self.username, realm, self.password, method, uri, nonce, nonce_count, cnonce, qop
        )
        header = (
            f'Digest username="{self.username}", realm="{realm}", nonce="{nonce}", '
            f'uri="{uri}", response="{response}", algorithm=MD5'
        )
        if qop:
            header += f', qop="{qop}", nc={nonce_count:08x}, cnonce="{cnonce}"'
        return header

    def _send(self, prepared: requests.PreparedRequest, stream: bool) -> requests.Response:
        try:
            return self.session.send(prepared, stream=stream, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise CameraTransportError(
                f"{prepared.method} {prepared.url} failed: {e}",
                address=urlsplit(prepared.url).netloc,
            ) from e

    def close(self) -> None:
        self.session.close()
