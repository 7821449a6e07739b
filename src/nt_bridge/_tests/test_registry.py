"""Tests for the orchestrator token and connection registry."""

from __future__ import annotations

import concurrent.futures

import pytest

from nt_bridge.client.handle import ConnectionHandle
from nt_bridge.client.session import ConnectionId
from nt_bridge.client.sync_loop import ConnectionChannels
from nt_bridge.errors import ThreadAffinityError
from nt_bridge.orchestrator import OrchestratorToken
from nt_bridge.registry import ConnectionRegistry


def _handle(identity: str) -> ConnectionHandle:
    cid = ConnectionId.from_address("192.168.1.5", 5810, identity)
    return ConnectionHandle(cid, ConnectionChannels.create(4), concurrent.futures.Future())


def test_token_requires_the_same_live_token() -> None:
    token = OrchestratorToken("main")
    token.require(token)
    with pytest.raises(ThreadAffinityError):
        token.require(OrchestratorToken("worker"))
    with pytest.raises(ThreadAffinityError):
        token.require(None)

    token.revoke()
    assert token.revoked
    with pytest.raises(ThreadAffinityError):
        token.validate()


def test_replace_returns_previous_without_stopping_it() -> None:
    token = OrchestratorToken()
    registry = ConnectionRegistry(token)
    first = _handle("bot")
    second = _handle("bot")

    assert registry.replace(token, first) is None
    assert registry.replace(token, second) is first
    assert first.running
    assert registry.get(first.connection_id) is second
    assert len(registry) == 1


def test_names_and_membership() -> None:
    token = OrchestratorToken()
    registry = ConnectionRegistry(token)
    handle = _handle("dash")
    registry.replace(token, handle)

    assert registry.names() == ["192.168.1.5:5810:dash"]
    assert handle.connection_id in registry
    assert "192.168.1.5:5810:dash" not in registry
    assert registry.remove(token, handle.connection_id) is handle
    assert registry.remove(token, handle.connection_id) is None


def test_mutations_reject_foreign_tokens() -> None:
    registry = ConnectionRegistry(OrchestratorToken())
    with pytest.raises(ThreadAffinityError):
        registry.replace(OrchestratorToken(), _handle("bot"))
    assert len(registry) == 0


def test_clear_stops_every_handle() -> None:
    token = OrchestratorToken()
    registry = ConnectionRegistry(token)
    handles = [_handle("a"), _handle("b")]
    for handle in handles:
        registry.replace(token, handle)

    assert registry.clear(token) == 2
    assert all(not handle.running for handle in handles)
    assert registry.ids() == []
