"""Pytest configuration and shared fixtures."""

import io
from pathlib import Path

import pytest
import structlog

from credbind.credentials import (
    InMemoryCredentialStore,
    SecretTextCredential,
    UsernamePasswordCredential,
)
from credbind.models import Binding, ScopeContext
from credbind.scope import ScopeBinder
from credbind.usage import InMemoryFingerprintLedger


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration done by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def ledger() -> InMemoryFingerprintLedger:
    """Empty in-memory fingerprint ledger."""
    return InMemoryFingerprintLedger()


@pytest.fixture
def store(ledger: InMemoryFingerprintLedger) -> InMemoryCredentialStore:
    """Store holding a username/password and a secret text credential."""
    return InMemoryCredentialStore(
        [
            UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t"),
            SecretTextCredential(id="webhook", secret="whsec-9f8e7d"),
        ],
        ledger=ledger,
    )


@pytest.fixture
def scope() -> ScopeContext:
    """Run 7 of the release pipeline."""
    return ScopeContext(consumer_id="release-pipeline", run_number=7)


@pytest.fixture
def workspace_scope(tmp_path: Path) -> ScopeContext:
    """Scope with a workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return ScopeContext(consumer_id="release-pipeline", run_number=7, workspace=workspace)


@pytest.fixture
def binder(store: InMemoryCredentialStore) -> ScopeBinder:
    """Binder over the sample store with the built-in binding types."""
    return ScopeBinder(store)


@pytest.fixture
def auth_binding() -> Binding:
    """Base64 username:password binding of the deploy credential."""
    return Binding(variable="AUTH", credentials_id="deploy", type="usernameColonPasswordBase64")


@pytest.fixture
def sink() -> io.BytesIO:
    """In-memory binary output sink."""
    return io.BytesIO()
