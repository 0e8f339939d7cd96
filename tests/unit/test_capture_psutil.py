"""Tests for the psutil enumeration backend."""

from __future__ import annotations

from collections import namedtuple
from unittest.mock import MagicMock, patch

import psutil
import pytest

from connwatch.capture.base import EnumerationError
from connwatch.capture.psutil_ import PsutilEnumerator
from connwatch.session.models import Endpoint

# Mock psutil connection objects
MockAddr = namedtuple("MockAddr", ["ip", "port"])
MockConn = namedtuple("MockConn", ["raddr", "laddr", "status"])


def _make_conn(
    remote_ip: str = "1.2.3.4",
    remote_port: int = 443,
    status: str = "ESTABLISHED",
) -> MockConn:
    return MockConn(
        raddr=MockAddr(remote_ip, remote_port),
        laddr=MockAddr("192.168.1.100", 54321),
        status=status,
    )


def _make_proc(pid: int, conns: list[MockConn], children: list | None = None) -> MagicMock:
    proc = MagicMock()
    proc.pid = pid
    proc.net_connections.return_value = conns
    proc.children.return_value = children or []
    return proc


@patch("connwatch.capture.psutil_.psutil.Process")
def test_returns_remote_endpoints(mock_process_cls: MagicMock):
    mock_process_cls.return_value = _make_proc(
        100, [_make_conn("1.2.3.4", 443), _make_conn("5.6.7.8", 80, status="SYN_SENT")]
    )

    endpoints = PsutilEnumerator().enumerate(100)

    assert endpoints == {Endpoint.of("1.2.3.4", 443), Endpoint.of("5.6.7.8", 80)}
    mock_process_cls.return_value.net_connections.assert_called_once_with(kind="tcp")


@patch("connwatch.capture.psutil_.psutil.Process")
def test_skips_listening_and_closing_sockets(mock_process_cls: MagicMock):
    listening = MockConn(raddr=(), laddr=MockAddr("0.0.0.0", 8080), status="LISTEN")
    mock_process_cls.return_value = _make_proc(
        100,
        [
            listening,
            _make_conn("1.2.3.4", 443, status="TIME_WAIT"),
            _make_conn("1.2.3.4", 444, status="CLOSE_WAIT"),
        ],
    )

    assert PsutilEnumerator().enumerate(100) == set()


@patch("connwatch.capture.psutil_.psutil.Process")
def test_skips_wildcard_remote(mock_process_cls: MagicMock):
    mock_process_cls.return_value = _make_proc(
        100, [_make_conn("0.0.0.0", 443), _make_conn("::", 443), _make_conn("1.2.3.4", 0)]
    )

    assert PsutilEnumerator().enumerate(100) == set()


@patch("connwatch.capture.psutil_.psutil.Process")
def test_address_families_collapse(mock_process_cls: MagicMock):
    mock_process_cls.return_value = _make_proc(
        100, [_make_conn("1.2.3.4", 443), _make_conn("::ffff:1.2.3.4", 443)]
    )

    assert PsutilEnumerator().enumerate(100) == {Endpoint.of("1.2.3.4", 443)}


@patch("connwatch.capture.psutil_.psutil.Process")
def test_includes_children(mock_process_cls: MagicMock):
    child = _make_proc(101, [_make_conn("9.9.9.9", 53)])
    mock_process_cls.return_value = _make_proc(100, [_make_conn("1.2.3.4", 443)], [child])

    endpoints = PsutilEnumerator(include_children=True).enumerate(100)

    assert endpoints == {Endpoint.of("1.2.3.4", 443), Endpoint.of("9.9.9.9", 53)}
    mock_process_cls.return_value.children.assert_called_once_with(recursive=True)


@patch("connwatch.capture.psutil_.psutil.Process")
def test_children_excluded_when_disabled(mock_process_cls: MagicMock):
    child = _make_proc(101, [_make_conn("9.9.9.9", 53)])
    mock_process_cls.return_value = _make_proc(100, [], [child])

    assert PsutilEnumerator(include_children=False).enumerate(100) == set()
    mock_process_cls.return_value.children.assert_not_called()


@patch("connwatch.capture.psutil_.psutil.Process")
def test_vanished_child_is_skipped(mock_process_cls: MagicMock):
    child = _make_proc(101, [])
    child.net_connections.side_effect = psutil.NoSuchProcess(101)
    mock_process_cls.return_value = _make_proc(100, [_make_conn("1.2.3.4", 443)], [child])

    assert PsutilEnumerator().enumerate(100) == {Endpoint.of("1.2.3.4", 443)}


@patch("connwatch.capture.psutil_.psutil.Process")
def test_missing_process_raises_enumeration_error(mock_process_cls: MagicMock):
    mock_process_cls.side_effect = psutil.NoSuchProcess(100)

    with pytest.raises(EnumerationError):
        PsutilEnumerator().enumerate(100)


@patch("connwatch.capture.psutil_.psutil.Process")
def test_access_denied_raises_enumeration_error(mock_process_cls: MagicMock):
    proc = _make_proc(100, [])
    proc.net_connections.side_effect = psutil.AccessDenied(100)
    mock_process_cls.return_value = proc

    with pytest.raises(EnumerationError):
        PsutilEnumerator().enumerate(100)
