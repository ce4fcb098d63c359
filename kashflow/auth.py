"""
KashFlow session token handshake.

KashFlow issues session tokens in two steps:
  1. POST /sessiontoken with username/password -> TemporaryToken plus the
     positions of memorable-word letters the server wants.
  2. PUT /sessiontoken with the TemporaryToken and those letters -> SessionToken.

Tokens are cached for 45 minutes and dropped on a 401.
"""

import threading
import time
from typing import Optional

import httpx

from shared.log import create_logger

_, log_debug, log_info, _, log_error = create_logger("Auth")

TOKEN_TTL_SECONDS = 45 * 60


class AuthenticationError(Exception):
    """KashFlow rejected the login or returned an unexpected handshake payload."""


def _extract_positions(raw_list) -> list[int]:
    """Pull letter positions out of MemorableWordList (ints or {Position: n} dicts)."""
    positions: list[int] = []
    if not isinstance(raw_list, list):
        return positions
    for entry in raw_list:
        if isinstance(entry, bool):
            continue
        if isinstance(entry, int):
            positions.append(entry)
        elif isinstance(entry, dict):
            pos = entry.get('Position', entry.get('position', entry.get('pos')))
            if isinstance(pos, int) and not isinstance(pos, bool):
                positions.append(pos)
    return positions


def memorable_word_letters(word: str, positions: list[int]) -> list[dict]:
    """
    Build the MemorableWordList payload for the PUT step.

    Args:
        word: The configured memorable word
        positions: 1-based letter positions requested by the server

    Returns:
        List of {"Position": n, "Value": letter} dicts

    Raises:
        AuthenticationError: If a position falls outside the word
    """
    letters = []
    for pos in positions:
        if pos < 1 or pos > len(word):
            raise AuthenticationError(
                f"Memorable word position out of range: {pos} (word length {len(word)})"
            )
        letters.append({'Position': pos, 'Value': word[pos - 1]})
    return letters


class SessionTokenProvider:
    """
    Obtains and caches KashFlow session tokens.

    Args:
        base_url: API root, e.g. https://api.kashflow.com/v2
        username: KashFlow username
        password: KashFlow password
        memorable_word: Memorable word for the letter challenge
        timeout: Request timeout in seconds
        http: Optional httpx.Client (tests inject one bound to respx)
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        memorable_word: str,
        timeout: float = 30.0,
        http: Optional[httpx.Client] = None,
    ):
        self._url = base_url.rstrip('/') + '/sessiontoken'
        self._username = username
        self._password = password
        self._memorable_word = memorable_word
        self._http = http or httpx.Client(timeout=timeout)
        self._token: Optional[str] = None
        self._obtained_at: float = 0.0
        self._lock = threading.Lock()

    def get_token(self, now: Optional[float] = None) -> str:
        """Return a cached session token, logging in again when it has expired."""
        if now is None:
            now = time.time()
        with self._lock:
            if self._token and now - self._obtained_at < TOKEN_TTL_SECONDS:
                return self._token
            self._token = self._login()
            self._obtained_at = now
            return self._token

    def invalidate(self) -> None:
        """Drop the cached token so the next request logs in again."""
        with self._lock:
            self._token = None
            self._obtained_at = 0.0
        log_debug("Session token invalidated")

    def _login(self) -> str:
        post = self._http.post(
            self._url,
            json={'username': self._username, 'password': self._password},
        )
        post.raise_for_status()
        body = post.json() or {}
        temp_token = body.get('TemporaryToken')
        positions = _extract_positions(body.get('MemorableWordList'))
        if not temp_token or not positions:
            raise AuthenticationError('Unexpected session token POST response')

        letters = memorable_word_letters(self._memorable_word, positions)
        log_info(
            "KashFlow requested memorable word positions",
            positions=[p['Position'] for p in letters],
            word_length=len(self._memorable_word),
        )

        put = self._http.put(
            self._url,
            json={'TemporaryToken': temp_token, 'MemorableWordList': letters},
        )
        if put.is_error:
            log_error("KashFlow session token PUT failed", status=put.status_code)
            put.raise_for_status()

        token = (put.json() or {}).get('SessionToken')
        if not token:
            raise AuthenticationError('Session token missing from PUT response')
        log_info("Obtained KashFlow session token")
        return token

    def close(self) -> None:
        self._http.close()
