"""
Do all the FHEMWEB HTTP heavy lifting in this file
"""

import errno
import http.client
import logging
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

import requests
import urllib3
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from PyFhem.config import FhemConfig
from PyFhem.const import (
    CHUNK_SIZE,
    CMD_PARAM,
    CSRF_HEADER,
    CSRF_PARAM,
    LOG_PREVIEW_LENGTH,
    XHR_PARAM,
    XHR_VALUE,
)
from PyFhem.exceptions import (
    ErrorKind,
    FhemConfigurationError,
    FhemCredentialsException,
    FhemException,
    FhemTransportError,
)
from PyFhem.logger import Logger
from PyFhem.perl import Scalar, parse_scalar

_LOGGER = Logger(__name__)

# Returned by a command attempt whose CSRF token was replaced; the attempt is reissued at once
REISSUE = object()


class FhemRequest:
    def __init__(self, cmd: str | None = None, internal: bool = False) -> None:
        self.cmd = cmd
        self.internal = internal


@dataclass
class FhemResponse:
    status_code: int
    reason: str
    headers: CaseInsensitiveDict
    text: str | None = None


@dataclass
class SessionState:
    """Mutable per-client state: CSRF token and last connection."""

    token: str | None = None
    token_checked: bool = False
    connection: Any = None
    local_port: int | None = None
    aborted_by_timeout: bool = False


class Http:
    def __init__(
        self,
        config: FhemConfig,
        http_session: requests.Session | None = None,
        logger: logging.Logger | None = None,
        debug: bool = False,
    ) -> None:
        if debug:
            _LOGGER.enable_console(logging.DEBUG)
        self._config = config
        self._logger = logger or _LOGGER
        self._owns_session = http_session is None
        self._session = http_session or self._create_session()
        self._state = SessionState()
        self._expiration_period = config.expiration_period
        self._headers = dict(config.transport.headers)
        if not config.transport.keep_alive:
            self._headers["Connection"] = "close"

    @property
    def expiration_period(self) -> int:
        """Retry budget per operation in milliseconds, 0 disables retrying."""
        return self._expiration_period

    @expiration_period.setter
    def expiration_period(self, value: int) -> None:
        self._expiration_period = max(0, int(value))

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def state(self) -> SessionState:
        return self._state

    def close(self) -> None:
        if self._owns_session:
            self._session.close()
        self._state.connection = None

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=1, pool_maxsize=1, max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _log_response(self, response: requests.Response, *args, **kwargs) -> None:
        raw = getattr(response, "raw", None)
        connection = getattr(raw, "connection", None)
        if connection is not None and connection is self._state.connection:
            self._logger.debug(f"Reusing connection (local port {self._state.local_port}) from last request.")
        else:
            self._state.connection = connection
            self._state.local_port = _local_port(connection)
            self._logger.debug(f"New connection (local port {self._state.local_port}) connected.")
        self._logger.debug(f"Server HTTP Version: {getattr(raw, 'version', 'unknown')}")

    def _configure_params(self, req: FhemRequest) -> dict[str, str]:
        params = {XHR_PARAM: XHR_VALUE}
        if req.cmd is not None:
            params[CMD_PARAM] = req.cmd
            if self._state.token:
                params[CSRF_PARAM] = self._state.token
        return params

    # region Transport

    def _get(self, req: FhemRequest) -> FhemResponse:
        """Issue one GET; the body is only read for status 200."""
        transport = self._config.transport
        self._state.aborted_by_timeout = False
        deadline = time.monotonic() + transport.timeout_sec if transport.timeout_sec else None
        reading_body = False
        try:
            response = self._session.get(
                self._config.url,
                params=self._configure_params(req),
                headers=self._headers,
                auth=self._config.credentials,
                verify=transport.verify,
                timeout=transport.timeout_sec,
                allow_redirects=False,
                stream=True,
                hooks={"response": [self._log_response]},
            )
            try:
                text = None
                if response.status_code == 200:
                    reading_body = True
                    text = self._read_body(response, deadline)
            finally:
                self._release(response)
        except (requests.exceptions.RequestException, urllib3.exceptions.HTTPError, OSError) as exc:
            raise self._transport_error(exc, reading_body) from exc
        return FhemResponse(response.status_code, response.reason or "", response.headers, text)

    def _read_body(self, response: requests.Response, deadline: float | None) -> str:
        chunks: list[bytes] = []
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            chunks.append(chunk)
            if deadline is not None and time.monotonic() >= deadline:
                self._abort(response)
        body = b"".join(chunks)
        try:
            return body.decode(response.encoding or "utf-8", errors="replace")
        except LookupError:
            self._logger.debug(f"Unknown charset '{response.encoding}', decoding response as utf-8.")
            return body.decode("utf-8", errors="replace")

    def _abort(self, response: requests.Response) -> None:
        # The per-read socket timeout never fires on a slowly trickling body
        self._logger.info("Aborting request because timeout value set by user exceeded.")
        self._state.aborted_by_timeout = True
        response.close()
        raise ConnectionResetError(errno.ECONNRESET, "Request aborted by client")

    def _release(self, response: requests.Response) -> None:
        consumed = getattr(response, "_content_consumed", False)
        response.close()
        if not consumed or not self._config.transport.keep_alive:
            self._logger.debug(f"Connection (local port {self._state.local_port}) closed.")
            self._state.connection = None

    def _transport_error(self, exc: BaseException, reading_body: bool) -> FhemTransportError:
        causes = list(_walk(exc))
        url = self._config.url

        def has(*types: type) -> bool:
            return any(isinstance(cause, types) for cause in causes)

        def has_errno(*codes: int) -> bool:
            return any(isinstance(cause, OSError) and cause.errno in codes for cause in causes)

        if has(ConnectionRefusedError) or has_errno(errno.ECONNREFUSED):
            return self._error(FhemTransportError, f"Connection to {url} refused.", ErrorKind.CONNECTION_REFUSED)
        if has_errno(errno.ENETUNREACH, errno.EHOSTUNREACH):
            return self._error(
                FhemTransportError,
                f"Cannot connect to {url}: Network is unreachable.",
                ErrorKind.NETWORK_UNREACHABLE,
            )

        # urllib3's NewConnectionError subclasses ConnectTimeoutError without being a timeout
        timed_out = (
            has(requests.exceptions.Timeout, TimeoutError)
            or has_errno(errno.ETIMEDOUT)
            or any(
                isinstance(cause, urllib3.exceptions.TimeoutError)
                and not isinstance(cause, urllib3.exceptions.NewConnectionError)
                for cause in causes
            )
        )
        reset = has(ConnectionResetError) or has_errno(errno.ECONNRESET)
        if timed_out or (reset and self._state.aborted_by_timeout):
            return self._error(FhemTransportError, f"Connecting to {url} timed out.", ErrorKind.CONNECT_TIMEOUT)
        if reading_body:
            if reset or has(
                requests.exceptions.ChunkedEncodingError,
                urllib3.exceptions.ProtocolError,
                http.client.IncompleteRead,
            ):
                return self._error(FhemTransportError, "Response closed prematurely.", ErrorKind.RESPONSE_ABORTED)
            return self._error(FhemTransportError, f"Response error: {exc}", ErrorKind.RESPONSE_ERROR)
        if reset:
            parts = urlsplit(url)
            return self._error(
                FhemTransportError,
                f"Connection reset by {parts.hostname}. Check if '{parts.scheme}' is the right protocol.",
                ErrorKind.CONNECTION_RESET,
            )
        return self._error(FhemTransportError, f"Request failed: {exc}", ErrorKind.REQUEST_ERROR)

    # endregion

    # region CSRF token

    def _ensure_token(self) -> None:
        if self._state.token is not None or self._state.token_checked:
            return
        self._logger.debug("Probing FHEMWEB for a CSRF token...")
        res = self._get(FhemRequest())
        if res.status_code != 200:
            raise self._status_error(res, "Failed to obtain CSRF token")
        self._state.token_checked = True
        token = res.headers.get(CSRF_HEADER)
        if token:
            self._state.token = token
            self._logger.debug("CSRF token obtained.")
        else:
            self._logger.info("FHEMWEB does not use a CSRF token.")

    def _adopt_token(self, res: FhemResponse, cmd: str) -> object:
        token = res.headers.get(CSRF_HEADER)
        if not token:
            raise self._error(
                FhemConfigurationError,
                f"Failed to execute FHEM command '{cmd}': Obviously, this FHEMWEB does use a CSRF token, "
                "but it doesn't send it.",
                ErrorKind.TOKEN_ABSENT,
            )
        if self._state.token:
            self._logger.info("CSRF token no longer valid, updating token and reissuing request...")
        else:
            self._logger.info("CSRF token needed, reissuing request with token...")
        self._state.token = token
        self._state.token_checked = True
        return REISSUE

    # endregion

    # region Commands

    def execute_command(self, cmd: str, internal: bool = False) -> Scalar:
        return self.call_and_retry(self._exec_cmd, FhemRequest(cmd, internal))

    def _exec_cmd(self, req: FhemRequest) -> Scalar | object:
        self._ensure_token()
        self._logger.log(
            logging.DEBUG if req.internal else logging.INFO,
            f"Executing FHEM command '{req.cmd}'...",
        )
        res = self._get(req)
        if res.status_code == 200:
            body = (res.text or "").rstrip("\n")
            preview = body[:LOG_PREVIEW_LENGTH] + "..." if len(body) > LOG_PREVIEW_LENGTH else body
            self._logger.debug(f"Request succeeded. Response: '{preview}'")
            return parse_scalar(body)
        if res.status_code == 400:
            return self._adopt_token(res, req.cmd)
        raise self._status_error(res, f"Failed to execute FHEM command '{req.cmd}'")

    def _status_error(self, res: FhemResponse, prefix: str) -> FhemException:
        if res.status_code == 401:
            return self._error(FhemCredentialsException, f"{prefix}: Wrong username or password.")
        if res.status_code == 302:
            return self._error(
                FhemConfigurationError,
                f"{prefix}: Wrong FHEM 'webname' in {self._config.url}.",
                ErrorKind.WRONG_BASE_PATH,
            )
        return self._error(
            FhemTransportError,
            f"{prefix}: Status: {res.status_code}, message: '{res.reason}'.",
            ErrorKind.UNEXPECTED_STATUS,
            res.status_code,
        )

    # endregion

    def call_and_retry(self, method: Callable[..., Any], *args: Any) -> Any:
        """Run ``method`` until it succeeds or retrying no longer applies.

        A ``REISSUE`` result repeats the call at once, without consulting the deadline.
        """
        period = self._expiration_period
        deadline = time.monotonic() + period / 1000 if period > 0 else None
        while True:
            try:
                result = method(*args)
            except FhemException as exc:
                interval = self._config.retry_intervals.get(exc.kind)
                if (
                    not exc.retryable
                    or deadline is None
                    or interval is None
                    or interval <= 0
                    or time.monotonic() + interval / 1000 >= deadline
                ):
                    raise
                self._logger.info(f"Retrying in {interval} ms...")
                time.sleep(interval / 1000)
                continue
            if result is REISSUE:
                continue
            return result

    def _error(self, exc_class: type, message: str, *args: Any) -> Any:
        self._logger.error(message)
        return exc_class(message, *args)


def _walk(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and every exception nested in it."""
    pending = [exc]
    seen: set[int] = set()
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        nested = [current.__cause__, current.__context__, getattr(current, "reason", None)]
        nested.extend(arg for arg in current.args if isinstance(arg, BaseException))
        pending.extend(item for item in nested if isinstance(item, BaseException))


def _local_port(connection: Any) -> int | None:
    sock = getattr(connection, "sock", None)
    if sock is None:
        return None
    try:
        return sock.getsockname()[1]
    except (OSError, IndexError, TypeError):
        return None
