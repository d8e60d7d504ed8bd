from __future__ import annotations

import logging

import pytest

from PyFhem import Fhem
from PyFhem.config import FhemConfig, TransportOptions
from PyFhem.exceptions import ErrorKind, FhemConfigurationError, FhemRemoteError
from tests.conftest import FakeClock, FakeResponse, FakeSession, token_probe

URL = "https://fhem.local:8083/fhem"


def _fhem(session: FakeSession, **kwargs) -> Fhem:
    return Fhem(URL, http_session=session, **kwargs)


def _sent_cmd(session: FakeSession, index: int = -1) -> str:
    return session.calls[index]["params"]["cmd"]


def test_invalid_url_raises_immediately() -> None:
    with pytest.raises(FhemConfigurationError) as excinfo:
        Fhem("not a url")

    assert excinfo.value.kind == ErrorKind.INVALID_URL


def test_url_or_config_required() -> None:
    with pytest.raises(ValueError):
        Fhem()


def test_config_and_url_together_are_rejected() -> None:
    config = FhemConfig.create(URL)

    with pytest.raises(ValueError, match="url"):
        Fhem("http://other.local/fhem", config=config)
    with pytest.raises(ValueError, match="transport, retry_intervals"):
        Fhem(config=config, transport=TransportOptions(), retry_intervals=[("connect-timeout", 5)])


def test_config_alone_is_used(clock: FakeClock) -> None:
    session = FakeSession(FakeResponse(200), FakeResponse(200, "1"))
    fhem = Fhem(config=FhemConfig.create(URL, transport=TransportOptions(timeout_sec=3)), http_session=session)

    assert fhem.execute_command("list") == 1
    assert session.calls[1]["timeout"] == 3


def test_execute_perl_code_wraps_code_in_braces(clock: FakeClock) -> None:
    session = FakeSession(token_probe(), FakeResponse(200, "21.5\n"))
    fhem = _fhem(session)

    assert fhem.execute_perl_code("ReadingsNum('sensor','temperature',0)") == 21.5
    assert _sent_cmd(session) == "{ ReadingsNum('sensor','temperature',0) }"


def test_call_fn_single_value_is_number(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, "[42]\n"))
    fhem = _fhem(session)

    assert fhem.call_fn("lamp", "getState", False, False) == 42

    cmd = _sent_cmd(session)
    assert cmd.startswith("{ my @ret=CallFn('lamp','getState');;")
    assert cmd.endswith(" }")


def test_call_fn_single_value_ignores_mapping_flag(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, '["on"]'))
    fhem = _fhem(session)

    assert fhem.call_fn("lamp", "getState", False, True) == "on"


def test_call_fn_returns_mapping(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, '["state","on","pct",80]'))
    fhem = _fhem(session)

    assert fhem.call_fn("lamp", "GetFn", True, True, "all") == {"state": "on", "pct": 80}
    assert "CallFn('lamp','GetFn',$defs{lamp},\"all\")" in _sent_cmd(session)


def test_call_fn_returns_list(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, '["a",1,"b"]'))
    fhem = _fhem(session)

    assert fhem.call_fn("lamp", "GetFn", False, False) == ["a", 1, "b"]


def test_call_fn_undef_is_none(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, "undef\n"))
    fhem = _fhem(session)

    assert fhem.call_fn("lamp", "SetFn", True, False, "on", None, 3, False) is None

    cmd = _sent_cmd(session)
    assert "my @args=(\"on\",'undefined',3,'')" in cmd
    assert "$args[$_]=undef for(1)" in cmd


def test_call_fn_odd_list_is_not_retried(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, '["a",1,"b"]'))
    fhem = _fhem(session)
    fhem.expiration_period = 60000

    with pytest.raises(FhemRemoteError) as excinfo:
        fhem.call_fn("lamp", "GetFn", False, True)

    assert excinfo.value.kind == ErrorKind.ODD_LENGTH_LIST
    assert len(session.calls) == 2
    assert clock.sleeps == []


def test_call_fn_fhem_error_message(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, "Unknown command {, try help.\n"))
    fhem = _fhem(session)
    fhem.expiration_period = 60000

    with pytest.raises(FhemRemoteError) as excinfo:
        fhem.call_fn("lamp", "GetFn", False, False)

    assert excinfo.value.kind == ErrorKind.REMOTE_INVOCATION_FAILED
    assert "Unknown command" in excinfo.value.message
    assert len(session.calls) == 2


def test_call_fn_logs_placeholder_for_device_hash(clock: FakeClock, caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("tests.fhem")
    session = FakeSession(token_probe(None), FakeResponse(200, "[1]"))
    fhem = _fhem(session, logger=logger)

    with caplog.at_level(logging.INFO, logger="tests.fhem"):
        fhem.call_fn("lamp", "GetFn", True, False, 7)

    assert "Invoking GetFn() of FHEM device lamp with arguments ['<device hash>', 7]" in caplog.text


def test_expiration_period_is_mutable(clock: FakeClock) -> None:
    fhem = _fhem(FakeSession())

    assert fhem.expiration_period == 0
    fhem.expiration_period = 15000
    assert fhem.expiration_period == 15000
    fhem.expiration_period = -1
    assert fhem.expiration_period == 0


def test_deprecated_aliases_delegate(clock: FakeClock) -> None:
    session = FakeSession(token_probe(None), FakeResponse(200, "1"), FakeResponse(200, "[1,2]"))
    fhem = _fhem(session)

    with pytest.warns(DeprecationWarning):
        assert fhem.execCmd("list") == 1
    with pytest.warns(DeprecationWarning):
        assert fhem.callFn("lamp", "GetFn", False, False) == [1, 2]


def test_context_manager_closes(clock: FakeClock) -> None:
    session = FakeSession()

    with _fhem(session) as fhem:
        assert isinstance(fhem, Fhem)
