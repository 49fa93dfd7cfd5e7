"""Scope binding: resolve all bindings of a scope, all or nothing.

The ScopeBinder turns a list of ``Binding`` declarations into a
``ScopeBindingSet`` for one execution scope:

1. Reject duplicate variable names, unknown binding types and missing
   workspaces before touching the credential store.
2. Resolve each binding in order: store lookup (capability checked),
   materialize the fields the transform needs, run the transform. The
   password or secret it was derived from is masked as well.
3. Abort on the first failure. The error is re-raised with the offending
   variable attached and every value resolved so far is wiped.
4. Record one usage per distinct credential.

``ScopeBinder.scope()`` wraps this in an async context manager that also
installs output maskers around the scope's stdout and stderr and tears
everything down on every exit path.

Example:
    >>> binder = ScopeBinder(store)
    >>> scope = ScopeContext(consumer_id="release-pipeline", run_number=7)
    >>> bindings = [Binding(variable="AUTH", credentials_id="deploy")]
    >>> async with binder.scope(scope, bindings) as bound:
    ...     await run_in_scope(bound, "curl", "-H", "Authorization: Basic $AUTH", url)
"""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import IO

import structlog

from credbind.bindings.registry import BindingDescriptor, BindingRegistry, get_default_registry
from credbind.bindings.transforms import TransformConfig
from credbind.credentials.store import CredentialStore, check_capability
from credbind.exceptions import (
    BindingError,
    BindTimeoutError,
    CredentialError,
    DuplicateVariableError,
    WorkspaceRequiredError,
)
from credbind.masking.masker import DEFAULT_PLACEHOLDER, MaskingTextWriter, OutputMasker
from credbind.models import Binding, CredentialRef, ScopeBindingSet, ScopeContext
from credbind.usage.tracker import UsageTracker

log = structlog.get_logger(__name__)


@dataclass
class BoundScope:
    """What a scope body sees while its bindings are active.

    Attributes:
        context: The scope being executed
        binding_set: Resolved variables (wiped when the scope exits)
        stdout: Masking wrapper around the scope's standard output
        stderr: Masking wrapper around the scope's standard error
    """

    context: ScopeContext
    binding_set: ScopeBindingSet
    stdout: OutputMasker
    stderr: OutputMasker

    @property
    def environment(self) -> dict[str, str]:
        """Bound variables only."""
        return self.binding_set.environment()

    @property
    def sensitive_variables(self) -> list[str]:
        return self.binding_set.sensitive_variables

    @property
    def warnings(self) -> list[str]:
        return self.binding_set.warnings

    def build_environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Merge the bound variables over a base environment (``os.environ`` by default)."""
        env = dict(os.environ if base is None else base)
        env.update(self.binding_set.environment())
        return env

    def text_stdout(self) -> MaskingTextWriter:
        return MaskingTextWriter(self.stdout)

    def text_stderr(self) -> MaskingTextWriter:
        return MaskingTextWriter(self.stderr)


class ScopeBinder:
    """Resolve bindings for execution scopes.

    A binder holds no per-scope state and may be shared by concurrently
    running scopes.

    Attributes:
        store: Credential store used for lookups and usage records
        registry: Binding types available to declarations
        placeholder: Text written in place of masked secrets
        default_timeout: Seconds allowed for a bind when the caller gives none
    """

    def __init__(
        self,
        store: CredentialStore,
        registry: BindingRegistry | None = None,
        placeholder: str = DEFAULT_PLACEHOLDER,
        default_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.registry = registry or get_default_registry()
        self.placeholder = placeholder
        self.default_timeout = default_timeout

    def validate(self, scope: ScopeContext, bindings: Sequence[Binding]) -> list[BindingDescriptor]:
        """Check declarations without resolving anything.

        Returns:
            The descriptor of each binding, in order

        Raises:
            DuplicateVariableError: A variable name appears twice
            BindingNotFoundError: A binding type is not registered
            WorkspaceRequiredError: A binding type needs a workspace the scope lacks
        """
        seen: set[str] = set()
        for binding in bindings:
            if binding.variable in seen:
                raise DuplicateVariableError(binding.variable)
            seen.add(binding.variable)

        descriptors = []
        for binding in bindings:
            try:
                descriptor = self.registry.descriptor(binding.type)
            except BindingError as e:
                raise e.for_variable(binding.variable)
            if descriptor.requires_workspace and scope.workspace is None:
                raise WorkspaceRequiredError(binding.variable, binding.type)
            descriptors.append(descriptor)
        return descriptors

    async def bind(
        self,
        scope: ScopeContext,
        bindings: Sequence[Binding],
        *,
        timeout: float | None = None,
    ) -> ScopeBindingSet:
        """Resolve every binding of a scope.

        Args:
            scope: Scope being bound
            bindings: Declarations, resolved in order
            timeout: Seconds allowed for resolution (default_timeout if None)

        Returns:
            The resolved ScopeBindingSet; the caller must ``unbind`` it

        Raises:
            DuplicateVariableError: Before any credential is looked up
            BindingError: First failing binding, with ``variable`` set
            BindTimeoutError: Resolution exceeded the timeout
        """
        bindings = list(bindings)
        descriptors = self.validate(scope, bindings)
        timeout = self.default_timeout if timeout is None else timeout
        scope_log = log.bind(scope_id=scope.scope_id)

        binding_set = ScopeBindingSet(scope.scope_id)
        current: str | None = None
        deadline = asyncio.timeout(timeout)
        try:
            try:
                async with deadline:
                    for binding, descriptor in zip(bindings, descriptors, strict=True):
                        current = binding.variable
                        await self._bind_one(scope, binding, descriptor, binding_set)
                        scope_log.info(
                            "binding_resolved",
                            variable=binding.variable,
                            credential_id=binding.credentials_id,
                            binding_type=binding.type,
                        )
            except TimeoutError as e:
                if not deadline.expired():
                    raise
                raise BindTimeoutError(
                    f"Binding did not complete within {timeout}s",
                    variable=current,
                ) from e

            tracker = UsageTracker(self.store, scope)
            for credential_id in binding_set.credential_ids:
                await tracker.record_usage(credential_id, scope.consumer_id)
            binding_set.warnings.extend(tracker.warnings)
        except BaseException as e:
            binding_set.wipe()
            scope_log.warning("bind_aborted", variable=current, error_type=type(e).__name__)
            raise

        return binding_set

    async def _bind_one(
        self,
        scope: ScopeContext,
        binding: Binding,
        descriptor: BindingDescriptor,
        binding_set: ScopeBindingSet,
    ) -> None:
        ref = CredentialRef(binding.credentials_id, descriptor.accepted_capabilities)

        try:
            try:
                credential = await self.store.lookup(
                    ref.credential_id, ref.capabilities, consumer_id=scope.consumer_id
                )
            except CredentialError:
                raise
            except Exception as e:
                raise BindingError(
                    f"Failed to look up credential: {e}",
                    reference=ref.credential_id,
                ) from e

            check_capability(credential, ref.capabilities)

            resolved = credential.materialize(descriptor.transform.required_fields)
            try:
                values = descriptor.transform.transform(resolved, TransformConfig(binding.options))
                masked = resolved.masked_values()
            finally:
                resolved.discard()
        except BindingError as e:
            raise e.for_variable(binding.variable)

        for suffix, value in values:
            variable = binding.variable if suffix is None else f"{binding.variable}_{suffix}"
            binding_set.add(variable, value)
        for value in masked:
            binding_set.add_mask(value)
        binding_set.add_credential(ref.credential_id)

    def unbind(self, binding_set: ScopeBindingSet) -> None:
        """Wipe a binding set. Safe to call more than once."""
        variables = binding_set.sensitive_variables
        binding_set.wipe()
        log.info("scope_unbound", scope_id=binding_set.scope_id, variables=variables)

    @asynccontextmanager
    async def scope(
        self,
        scope: ScopeContext,
        bindings: Sequence[Binding],
        *,
        stdout: IO[bytes] | None = None,
        stderr: IO[bytes] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[BoundScope]:
        """Bind, mask output, run the body, and tear down on every exit path.

        Args:
            scope: Scope being executed
            bindings: Declarations to resolve
            stdout: Sink for the scope's standard output (``sys.stdout.buffer`` by default)
            stderr: Sink for the scope's standard error (``sys.stderr.buffer`` by default)
            timeout: Seconds allowed for the bind step
        """
        binding_set = await self.bind(scope, bindings, timeout=timeout)
        try:
            secrets = binding_set.secret_values
            out = OutputMasker(stdout or sys.stdout.buffer, secrets, self.placeholder)
            err = OutputMasker(stderr or sys.stderr.buffer, secrets, self.placeholder)
            del secrets
        except BaseException:
            self.unbind(binding_set)
            raise

        try:
            yield BoundScope(context=scope, binding_set=binding_set, stdout=out, stderr=err)
        finally:
            try:
                out.close()
                err.close()
            finally:
                self.unbind(binding_set)
