"""Tests for scope binding and teardown."""

import asyncio
import base64
import io
import json

import pytest

from credbind.bindings.registry import create_builtin_registry
from credbind.bindings.transforms import UsernameColonPassword
from credbind.credentials import InMemoryCredentialStore, UsernamePasswordCredential
from credbind.exceptions import (
    AccessDeniedError,
    BindingError,
    BindingNotFoundError,
    BindTimeoutError,
    CapabilityMismatchError,
    CredentialNotFoundError,
    DuplicateVariableError,
    IncompleteCredentialError,
    UsageTrackingError,
    WorkspaceRequiredError,
)
from credbind.models import Binding, Capability, ScopeBindingSet, ScopeContext
from credbind.scope import ScopeBinder
from credbind.usage import JsonFingerprintLedger


class SlowStore(InMemoryCredentialStore):
    """Store whose lookups take longer than the bind timeout."""

    def __init__(self, *args, delay=5.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay

    async def lookup(self, credential_id, accepted, consumer_id=None):
        await asyncio.sleep(self.delay)
        return await super().lookup(credential_id, accepted, consumer_id)


class FailingUsageStore(InMemoryCredentialStore):
    """Store whose usage records always fail."""

    async def record_fingerprint(self, credential_id, consumer_id, run_number):
        raise UsageTrackingError("ledger is read-only")


class CountingStore(InMemoryCredentialStore):
    """Store counting lookups and usage records."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.lookups = []
        self.records = []

    async def lookup(self, credential_id, accepted, consumer_id=None):
        self.lookups.append(credential_id)
        return await super().lookup(credential_id, accepted, consumer_id)

    async def record_fingerprint(self, credential_id, consumer_id, run_number):
        self.records.append((credential_id, consumer_id, run_number))
        await super().record_fingerprint(credential_id, consumer_id, run_number)


@pytest.fixture
def counting_store():
    """Counting store with one incomplete and one complete credential."""
    return CountingStore(
        [
            UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t"),
            UsernamePasswordCredential(id="half", username="alice"),
        ]
    )


class TestBind:
    """Test ScopeBinder.bind."""

    @pytest.mark.asyncio
    async def test_bind_base64(self, binder, scope, auth_binding):
        """Test the canonical bob/s3cr3t binding."""
        binding_set = await binder.bind(scope, [auth_binding])

        assert binding_set.environment() == {"AUTH": "Ym9iOnMzY3IzdA=="}
        assert binding_set.sensitive_variables == ["AUTH"]
        assert base64.b64decode(binding_set.environment()["AUTH"]) == b"bob:s3cr3t"
        assert binding_set.secret_values == frozenset({"Ym9iOnMzY3IzdA==", "s3cr3t"})

    @pytest.mark.asyncio
    async def test_bind_multiple_types(self, binder, scope):
        """Test several bindings and a multi-variable type."""
        bindings = [
            Binding(variable="AUTH", credentials_id="deploy"),
            Binding(variable="REG", credentials_id="deploy", type="usernamePassword"),
            Binding(variable="HOOK", credentials_id="webhook", type="string"),
        ]

        binding_set = await binder.bind(scope, bindings)

        assert binding_set.environment() == {
            "AUTH": "Ym9iOnMzY3IzdA==",
            "REG_USERNAME": "bob",
            "REG_PASSWORD": "s3cr3t",
            "HOOK": "whsec-9f8e7d",
        }
        assert binding_set.sensitive_variables == ["AUTH", "HOOK", "REG_PASSWORD", "REG_USERNAME"]
        assert binding_set.credential_ids == ("deploy", "webhook")

    @pytest.mark.asyncio
    async def test_camel_case_alias(self, binder, scope):
        """Test declarations accept credentialsId."""
        binding = Binding.model_validate({"variable": "AUTH", "credentialsId": "deploy"})

        binding_set = await binder.bind(scope, [binding])

        assert "AUTH" in binding_set

    @pytest.mark.asyncio
    async def test_empty_bindings(self, binder, scope):
        """Test binding nothing yields an empty set."""
        binding_set = await binder.bind(scope, [])

        assert len(binding_set) == 0
        assert binding_set.secret_values == frozenset()

    @pytest.mark.asyncio
    async def test_duplicate_variable_rejected_before_lookup(self, counting_store, scope):
        """Test duplicate variables fail with no lookup and no usage record."""
        binder = ScopeBinder(counting_store)
        bindings = [
            Binding(variable="AUTH", credentials_id="deploy"),
            Binding(variable="AUTH", credentials_id="deploy", type="usernameColonPassword"),
        ]

        with pytest.raises(DuplicateVariableError) as exc_info:
            await binder.bind(scope, bindings)

        assert exc_info.value.variable == "AUTH"
        assert counting_store.lookups == []
        assert counting_store.records == []

    @pytest.mark.asyncio
    async def test_unknown_type_rejected_before_lookup(self, counting_store, scope):
        """Test unknown binding types fail validation with the variable attached."""
        binder = ScopeBinder(counting_store)

        with pytest.raises(BindingNotFoundError) as exc_info:
            await binder.bind(scope, [Binding(variable="KEY", credentials_id="deploy", type="sshKey")])

        assert exc_info.value.variable == "KEY"
        assert str(exc_info.value).startswith("[KEY]")
        assert counting_store.lookups == []

    @pytest.mark.asyncio
    async def test_incomplete_credential_aborts_without_usage(self, counting_store, scope):
        """Test a credential without a password fails with no usage record."""
        binder = ScopeBinder(counting_store)

        with pytest.raises(IncompleteCredentialError) as exc_info:
            await binder.bind(scope, [Binding(variable="AUTH", credentials_id="half")])

        assert exc_info.value.variable == "AUTH"
        assert exc_info.value.reference == "half"
        assert counting_store.records == []

    @pytest.mark.asyncio
    async def test_fail_fast_stops_at_first_failure(self, counting_store, scope):
        """Test later bindings are not resolved and no usage is recorded."""
        binder = ScopeBinder(counting_store)
        bindings = [
            Binding(variable="OK", credentials_id="deploy"),
            Binding(variable="MISSING", credentials_id="nope"),
            Binding(variable="LATER", credentials_id="deploy", type="usernameColonPassword"),
        ]

        with pytest.raises(CredentialNotFoundError) as exc_info:
            await binder.bind(scope, bindings)

        assert exc_info.value.variable == "MISSING"
        assert exc_info.value.suggestion is not None
        assert counting_store.lookups == ["deploy", "nope"]
        assert counting_store.records == []

    @pytest.mark.asyncio
    async def test_capability_mismatch(self, binder, scope):
        """Test a secret text credential cannot feed a username/password type."""
        with pytest.raises(CapabilityMismatchError) as exc_info:
            await binder.bind(scope, [Binding(variable="AUTH", credentials_id="webhook")])

        assert exc_info.value.variable == "AUTH"
        assert "secret_text" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_access_denied(self, scope):
        """Test stores may refuse a consumer."""
        store = InMemoryCredentialStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")],
            access={"deploy": ["other-pipeline"]},
        )

        with pytest.raises(AccessDeniedError) as exc_info:
            await ScopeBinder(store).bind(scope, [Binding(variable="AUTH", credentials_id="deploy")])

        assert exc_info.value.variable == "AUTH"

    @pytest.mark.asyncio
    async def test_unexpected_store_error_wrapped(self, scope):
        """Test arbitrary store failures surface as BindingError."""

        class BrokenStore(InMemoryCredentialStore):
            async def lookup(self, credential_id, accepted, consumer_id=None):
                raise RuntimeError("connection reset")

        with pytest.raises(BindingError) as exc_info:
            await ScopeBinder(BrokenStore()).bind(
                scope, [Binding(variable="AUTH", credentials_id="deploy")]
            )

        assert exc_info.value.variable == "AUTH"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_error_never_contains_secret(self, scope):
        """Test failure messages carry ids, never values."""
        store = InMemoryCredentialStore(
            [UsernamePasswordCredential(id="bad", username="bob", password="s3\udc80cr3t")]
        )

        with pytest.raises(BindingError) as exc_info:
            await ScopeBinder(store).bind(scope, [Binding(variable="AUTH", credentials_id="bad")])

        assert "s3" not in str(exc_info.value)
        assert "bad" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_workspace_required(self, store, scope, workspace_scope):
        """Test types needing a workspace fail without one."""
        registry = create_builtin_registry(freeze=False)
        registry.register(
            "netrc",
            UsernameColonPassword(),
            frozenset({Capability.USERNAME_PASSWORD}),
            requires_workspace=True,
        )
        binder = ScopeBinder(store, registry=registry)
        bindings = [Binding(variable="NETRC", credentials_id="deploy", type="netrc")]

        with pytest.raises(WorkspaceRequiredError) as exc_info:
            await binder.bind(scope, bindings)
        binding_set = await binder.bind(workspace_scope, bindings)

        assert exc_info.value.binding_type == "netrc"
        assert binding_set.environment() == {"NETRC": "bob:s3cr3t"}

    @pytest.mark.asyncio
    async def test_suffix_collision_is_duplicate(self, binder, scope):
        """Test a suffixed variable colliding with another binding fails."""
        bindings = [
            Binding(variable="REG_USERNAME", credentials_id="deploy", type="usernameColonPassword"),
            Binding(variable="REG", credentials_id="deploy", type="usernamePassword"),
        ]

        with pytest.raises(DuplicateVariableError):
            await binder.bind(scope, bindings)


class TestUsageRecording:
    """Test usage records emitted by a bind."""

    @pytest.mark.asyncio
    async def test_one_record_per_credential(self, counting_store, scope):
        """Test two bindings of one credential record one usage."""
        binder = ScopeBinder(counting_store)
        bindings = [
            Binding(variable="AUTH", credentials_id="deploy"),
            Binding(variable="REG", credentials_id="deploy", type="usernamePassword"),
        ]

        await binder.bind(scope, bindings)

        assert counting_store.records == [("deploy", "release-pipeline", 7)]

    @pytest.mark.asyncio
    async def test_rebind_same_run_records_once(self, counting_store, scope, auth_binding):
        """Test binding twice within one run records one usage."""
        binder = ScopeBinder(counting_store)

        await binder.bind(scope, [auth_binding])
        await binder.bind(scope, [auth_binding])

        assert counting_store.records == [("deploy", "release-pipeline", 7)]

    @pytest.mark.asyncio
    async def test_new_run_records_again(self, counting_store, scope, auth_binding):
        """Test a later run of the same consumer records its own usage."""
        binder = ScopeBinder(counting_store)

        await binder.bind(scope, [auth_binding])
        await binder.bind(ScopeContext(consumer_id="release-pipeline", run_number=8), [auth_binding])

        assert counting_store.records == [
            ("deploy", "release-pipeline", 7),
            ("deploy", "release-pipeline", 8),
        ]

    @pytest.mark.asyncio
    async def test_fingerprint_written(self, binder, ledger, scope, auth_binding):
        """Test the store's ledger holds the run after a bind."""
        assert await ledger.get("deploy") is None

        await binder.bind(scope, [auth_binding])
        fingerprint = await ledger.get("deploy")

        assert fingerprint.includes("release-pipeline", 7)
        assert await ledger.get("webhook") is None

    @pytest.mark.asyncio
    async def test_usage_failure_is_warning(self, scope, auth_binding):
        """Test a failing usage record does not fail the bind."""
        store = FailingUsageStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")]
        )

        binding_set = await ScopeBinder(store).bind(scope, [auth_binding])

        assert binding_set.environment() == {"AUTH": "Ym9iOnMzY3IzdA=="}
        assert len(binding_set.warnings) == 1
        assert "deploy" in binding_set.warnings[0]

    @pytest.mark.asyncio
    async def test_unexpected_usage_error_is_warning(self, scope, auth_binding):
        """Test a usage store failing outside the credbind hierarchy does not fail the bind."""

        class AnalyticsDownStore(InMemoryCredentialStore):
            async def record_fingerprint(self, credential_id, consumer_id, run_number):
                raise RuntimeError("analytics backend down")

        store = AnalyticsDownStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")]
        )

        binding_set = await ScopeBinder(store).bind(scope, [auth_binding])

        assert binding_set.environment() == {"AUTH": "Ym9iOnMzY3IzdA=="}
        assert len(binding_set.warnings) == 1
        assert "analytics backend down" in binding_set.warnings[0]
        assert scope.recorded_usage == set()

    @pytest.mark.asyncio
    async def test_corrupted_ledger_is_warning(self, tmp_path, scope, auth_binding):
        """Test a malformed fingerprint file does not fail the bind."""
        ledger = JsonFingerprintLedger(tmp_path)
        ledger._path("deploy").write_text(
            json.dumps(
                {
                    "credential_id": "deploy",
                    "created_at": "2026-01-01T00:00:00+00:00",
                    "usages": {"x": [1]},
                }
            )
        )
        store = InMemoryCredentialStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")],
            ledger=ledger,
        )

        binding_set = await ScopeBinder(store).bind(scope, [auth_binding])

        assert binding_set.environment() == {"AUTH": "Ym9iOnMzY3IzdA=="}
        assert len(binding_set.warnings) == 1
        assert "Corrupted fingerprint" in binding_set.warnings[0]

    @pytest.mark.asyncio
    async def test_concurrent_binds_of_one_scope_record_once(self, scope, auth_binding):
        """Test two binds of the same scope racing on a slow ledger record one usage."""

        class SlowRecordStore(CountingStore):
            async def record_fingerprint(self, credential_id, consumer_id, run_number):
                await asyncio.sleep(0.01)
                await super().record_fingerprint(credential_id, consumer_id, run_number)

        store = SlowRecordStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")]
        )
        binder = ScopeBinder(store)

        first, second = await asyncio.gather(
            binder.bind(scope, [auth_binding]),
            binder.bind(scope, [auth_binding]),
        )

        assert store.records == [("deploy", "release-pipeline", 7)]
        assert first.environment() == second.environment() == {"AUTH": "Ym9iOnMzY3IzdA=="}
        assert first.warnings == second.warnings == []


class TestBindCancellation:
    """Test timeouts and cancellation during a bind."""

    @pytest.mark.asyncio
    async def test_timeout_raises_bind_timeout(self, scope, auth_binding):
        """Test a slow store exceeds the bind timeout."""
        store = SlowStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")],
        )

        with pytest.raises(BindTimeoutError) as exc_info:
            await ScopeBinder(store).bind(scope, [auth_binding], timeout=0.05)

        assert exc_info.value.variable == "AUTH"
        assert await store.ledger.get("deploy") is None

    @pytest.mark.asyncio
    async def test_default_timeout_used(self, scope, auth_binding):
        """Test the binder's default timeout applies when none is given."""
        store = SlowStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")],
        )

        with pytest.raises(BindTimeoutError):
            await ScopeBinder(store, default_timeout=0.05).bind(scope, [auth_binding])

    @pytest.mark.asyncio
    async def test_cancellation_wipes_partial_results(self, scope, monkeypatch):
        """Test cancelling mid-bind wipes values resolved so far."""
        created = []

        class RecordingBindingSet(ScopeBindingSet):
            def __init__(self, scope_id):
                super().__init__(scope_id)
                created.append(self)

        class HangingStore(InMemoryCredentialStore):
            async def lookup(self, credential_id, accepted, consumer_id=None):
                if credential_id == "hang":
                    await asyncio.Event().wait()
                return await super().lookup(credential_id, accepted, consumer_id)

        monkeypatch.setattr("credbind.scope.binder.ScopeBindingSet", RecordingBindingSet)
        store = HangingStore(
            [UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")]
        )
        bindings = [
            Binding(variable="AUTH", credentials_id="deploy"),
            Binding(variable="HANG", credentials_id="hang"),
        ]

        task = asyncio.create_task(ScopeBinder(store).bind(scope, bindings))
        while not created or "AUTH" not in created[0]:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert created[0].wiped is True
        assert len(created[0]) == 0
        assert await store.ledger.get("deploy") is None


class TestScopeContextManager:
    """Test ScopeBinder.scope teardown."""

    @pytest.mark.asyncio
    async def test_scope_masks_and_unbinds(self, binder, scope, auth_binding):
        """Test output is masked and bindings wiped on normal exit."""
        out, err = io.BytesIO(), io.BytesIO()

        async with binder.scope(scope, [auth_binding], stdout=out, stderr=err) as bound:
            assert bound.environment == {"AUTH": "Ym9iOnMzY3IzdA=="}
            bound.stdout.write(b"Authorization: Basic Ym9iOnMz")
            bound.stdout.write(b"Y3IzdA==\n")
            bound.text_stderr().write("AUTH=Ym9iOnMzY3IzdA==")
            binding_set = bound.binding_set

        assert out.getvalue() == b"Authorization: Basic ****\n"
        assert err.getvalue() == b"AUTH=****"
        assert binding_set.wiped is True
        assert bound.stdout.closed and bound.stderr.closed

    @pytest.mark.asyncio
    async def test_scope_masks_literal_password(self, binder, scope, auth_binding):
        """Test the password behind a base64 binding is masked too."""
        out = io.BytesIO()

        async with binder.scope(scope, [auth_binding], stdout=out, stderr=io.BytesIO()) as bound:
            print("logging in as bob with s3c", end="", file=bound.text_stdout())
            print("r3t", file=bound.text_stdout())
            sensitive = bound.sensitive_variables

        assert out.getvalue() == b"logging in as bob with ****\n"
        assert sensitive == ["AUTH"]

    @pytest.mark.asyncio
    async def test_scope_unbinds_on_error(self, binder, scope, auth_binding):
        """Test a failing scope body still flushes and wipes."""
        out = io.BytesIO()

        with pytest.raises(RuntimeError):
            async with binder.scope(scope, [auth_binding], stdout=out, stderr=io.BytesIO()) as bound:
                bound.stdout.write(b"partial Ym9iOnMzY3Iz")
                binding_set = bound.binding_set
                raise RuntimeError("build failed")

        assert binding_set.wiped is True
        assert bound.stdout.closed
        assert out.getvalue() == b"partial Ym9iOnMzY3Iz"

    @pytest.mark.asyncio
    async def test_scope_bind_failure_raises_before_body(self, binder, scope):
        """Test the body never runs when binding fails."""
        entered = False

        with pytest.raises(CredentialNotFoundError):
            async with binder.scope(scope, [Binding(variable="X", credentials_id="nope")]):
                entered = True

        assert entered is False

    @pytest.mark.asyncio
    async def test_build_environment_merges_base(self, binder, scope, auth_binding):
        """Test bound variables override the base environment."""
        async with binder.scope(
            scope, [auth_binding], stdout=io.BytesIO(), stderr=io.BytesIO()
        ) as bound:
            env = bound.build_environment({"PATH": "/bin", "AUTH": "stale"})

        assert env == {"PATH": "/bin", "AUTH": "Ym9iOnMzY3IzdA=="}

    @pytest.mark.asyncio
    async def test_concurrent_scopes_are_isolated(self, store, auth_binding):
        """Test scopes bound concurrently by one binder do not share state."""
        binder = ScopeBinder(store)
        first = ScopeContext(consumer_id="a", run_number=1)
        second = ScopeContext(consumer_id="b", run_number=1)

        one, two = await asyncio.gather(
            binder.bind(first, [auth_binding]),
            binder.bind(second, [Binding(variable="HOOK", credentials_id="webhook", type="string")]),
        )
        binder.unbind(one)

        assert one.wiped is True
        assert two.environment() == {"HOOK": "whsec-9f8e7d"}
