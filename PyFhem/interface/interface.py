"""
PyFhem interface to run commands, Perl code and device functions on FHEM
"""

import functools
import logging
import warnings
from collections.abc import Iterable

import requests

from PyFhem.config import FhemConfig, TransportOptions
from PyFhem.const import DEVICE_HANDLE_PLACEHOLDER
from PyFhem.exceptions import ErrorKind, FhemRemoteError
from PyFhem.http import Http
from PyFhem.perl import Argument, Result, Scalar, build_call, parse_call_result


def deprecated(new_func_name):
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            warnings.warn(
                f"'{func.__name__}' deprecated, use '{new_func_name}'. Remove >= 1.0.0.",
                DeprecationWarning, stacklevel=2)
            return getattr(args[0], new_func_name)(*args[1:], **kwargs)
        return wrapper
    return decorator


class Fhem:
    """Executes commands on a FHEM server via FHEMWEB."""

    def __init__(
        self,
        url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        transport: TransportOptions | None = None,
        retry_intervals: Iterable[tuple[ErrorKind | str, int]] | None = None,
        logger: logging.Logger | None = None,
        http_session: requests.Session | None = None,
        debug: bool = False,
        config: FhemConfig | None = None,
    ):
        """Either pass ``url`` and friends, or a ready ``config``.

        An invalid URL raises FhemConfigurationError right here.
        """
        if config is not None:
            given = [
                name
                for name, value in (
                    ("url", url),
                    ("username", username),
                    ("password", password),
                    ("transport", transport),
                    ("retry_intervals", retry_intervals),
                )
                if value is not None
            ]
            if given:
                raise ValueError(f"Pass either 'config' or {', '.join(given)}, not both.")
        elif url is None:
            raise ValueError("Either 'url' or 'config' is required.")
        else:
            config = FhemConfig.create(
                url=url,
                username=username,
                password=password,
                transport=transport,
                retry_intervals=retry_intervals,
            )
        self._http = Http(config=config, http_session=http_session, logger=logger, debug=debug)

    def __enter__(self) -> "Fhem":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    @property
    def expiration_period(self) -> int:
        """Milliseconds an operation may keep retrying; 0 (the default) disables retries."""
        return self._http.expiration_period

    @expiration_period.setter
    def expiration_period(self, value: int) -> None:
        self._http.expiration_period = value

    def execute_command(self, cmd: str) -> Scalar:
        """Run a FHEM command and return its output, numbers parsed."""
        return self._http.execute_command(cmd)

    def execute_perl_code(self, code: str) -> Scalar:
        """Run Perl code on FHEM and return the value of its last expression."""
        return self._execute_perl_code(code, internal=False)

    def _execute_perl_code(self, code: str, internal: bool) -> Scalar:
        self._http.logger.log(
            logging.DEBUG if internal else logging.INFO,
            f"Executing Perl code '{code}'...",
        )
        return self._http.execute_command(f"{{ {code} }}", internal=True)

    def call_fn(
        self,
        name: str,
        function_name: str,
        pass_dev_hash: bool = False,
        function_returns_hash: bool = False,
        *args: Argument,
    ) -> Result:
        """Call ``function_name`` of FHEM device ``name`` via CallFn.

        Args:
            name: Device name.
            function_name: Function key in the device's module hash, e.g. 'GetFn'.
            pass_dev_hash: Pass the device hash as first argument.
            function_returns_hash: Turn an even-sized result list into a dict.
            *args: Further arguments; None is passed as Perl undef.

        Returns:
            None for undef, the value itself for a single value, else a list or dict.
        """
        logged_args = [DEVICE_HANDLE_PLACEHOLDER, *args] if pass_dev_hash else list(args)
        self._http.logger.info(
            f"Invoking {function_name}() of FHEM device {name} with arguments {logged_args}"
        )
        code = build_call(name, function_name, pass_dev_hash, args)
        ret = self._execute_perl_code(code, internal=True)
        try:
            return parse_call_result(ret, name, function_name, function_returns_hash)
        except FhemRemoteError as exc:
            self._http.logger.error(str(exc))
            raise

    # region Deprecated Methods
    # pylint: disable=invalid-name
    @deprecated("execute_command")
    def execCmd(self, cmd): return self.execute_command(cmd)
    @deprecated("execute_perl_code")
    def execPerlCode(self, code): return self.execute_perl_code(code)
    @deprecated("call_fn")
    def callFn(self, name, functionName, passDevHash=False, functionReturnsHash=False, *args):
        return self.call_fn(name, functionName, passDevHash, functionReturnsHash, *args)
    # pylint: enable=invalid-name
    # endregion
