"""Tests for credential transforms."""

import base64

import pytest

from credbind.bindings.transforms import (
    ExposedValue,
    SecretText,
    TransformConfig,
    UsernameColonPassword,
    UsernameColonPasswordBase64,
    UsernamePasswordMulti,
)
from credbind.credentials.models import (
    Capability,
    Credential,
    ResolvedCredential,
    SecretTextCredential,
    UsernamePasswordCredential,
)
from credbind.exceptions import IncompleteCredentialError, TransformFailureError


def resolved_user(username, password):
    return ResolvedCredential(
        "deploy",
        Capability.USERNAME_PASSWORD,
        {"username": username, "password": password},
    )


class TestUsernameColonPasswordBase64:
    """Test the base64 username:password transform."""

    def test_known_value(self):
        """Test bob/s3cr3t encodes to the standard Basic auth value."""
        values = UsernameColonPasswordBase64().transform(resolved_user("bob", "s3cr3t"), TransformConfig())

        assert values == [ExposedValue(None, "Ym9iOnMzY3IzdA==")]

    @pytest.mark.parametrize(
        "username,password",
        [("bob", "s3cr3t"), ("", ""), ("ünïcödé", "pässwörd"), ("a" * 200, "b" * 300)],
    )
    def test_decodes_to_username_colon_password(self, username, password):
        """Test decoding the value yields the exact username:password UTF-8 bytes."""
        [value] = UsernameColonPasswordBase64().transform(
            resolved_user(username, password), TransformConfig()
        )

        assert base64.b64decode(value.value) == f"{username}:{password}".encode()

    def test_colon_in_fields_is_not_escaped(self):
        """Test the separator ambiguity is preserved as-is."""
        transform = UsernameColonPasswordBase64()

        first = transform.transform(resolved_user("user", "pa:ss"), TransformConfig())
        second = transform.transform(resolved_user("user:pa", "ss"), TransformConfig())

        assert first == second

    def test_missing_password_raises_incomplete(self):
        """Test absent password raises IncompleteCredentialError."""
        with pytest.raises(IncompleteCredentialError) as exc_info:
            UsernameColonPasswordBase64().transform(resolved_user("bob", None), TransformConfig())

        assert "password" in exc_info.value.message
        assert exc_info.value.reference == "deploy"

    def test_empty_password_is_not_missing(self):
        """Test an empty string is a present field."""
        [value] = UsernameColonPasswordBase64().transform(resolved_user("bob", ""), TransformConfig())

        assert base64.b64decode(value.value) == b"bob:"

    def test_unencodable_value_raises_transform_failure(self):
        """Test a lone surrogate fails without leaking the value."""
        with pytest.raises(TransformFailureError) as exc_info:
            UsernameColonPasswordBase64().transform(resolved_user("bob", "s3\udc80cr3t"), TransformConfig())

        assert "s3" not in str(exc_info.value)
        assert exc_info.value.__cause__ is None


class TestOtherTransforms:
    """Test the remaining built-in transforms."""

    def test_username_colon_password(self):
        """Test plain conjoined form."""
        values = UsernameColonPassword().transform(resolved_user("bob", "s3cr3t"), TransformConfig())

        assert values == [ExposedValue(None, "bob:s3cr3t")]

    def test_multi_default_suffixes(self):
        """Test separated form uses USERNAME/PASSWORD suffixes in order."""
        values = UsernamePasswordMulti().transform(resolved_user("bob", "s3cr3t"), TransformConfig())

        assert values == [ExposedValue("USERNAME", "bob"), ExposedValue("PASSWORD", "s3cr3t")]

    def test_multi_custom_suffixes(self):
        """Test suffixes come from binding options."""
        config = TransformConfig({"username_suffix": "USER", "password_suffix": "PASS"})

        values = UsernamePasswordMulti().transform(resolved_user("bob", "s3cr3t"), config)

        assert [v.suffix for v in values] == ["USER", "PASS"]

    def test_multi_missing_username(self):
        """Test separated form requires both fields."""
        with pytest.raises(IncompleteCredentialError):
            UsernamePasswordMulti().transform(resolved_user(None, "s3cr3t"), TransformConfig())

    def test_secret_text(self):
        """Test secret text is exposed unchanged."""
        resolved = ResolvedCredential("webhook", Capability.SECRET_TEXT, {"secret": "whsec"})

        assert SecretText().transform(resolved, TransformConfig()) == [ExposedValue(None, "whsec")]

    def test_secret_text_missing(self):
        """Test secret text without a secret is incomplete."""
        resolved = ResolvedCredential("webhook", Capability.SECRET_TEXT, {"secret": None})

        with pytest.raises(IncompleteCredentialError):
            SecretText().transform(resolved, TransformConfig())

    def test_transform_is_deterministic(self):
        """Test the same input always yields the same output."""
        transform = UsernameColonPasswordBase64()
        resolved = resolved_user("bob", "s3cr3t")

        assert transform.transform(resolved, TransformConfig()) == transform.transform(
            resolved, TransformConfig()
        )


class TestMaterialize:
    """Test credentials materialize only the requested fields."""

    def test_base_credential_is_abstract(self):
        """Test only concrete credential types can be built."""
        with pytest.raises(TypeError):
            Credential(id="deploy")

    def test_materialize_requested_fields(self):
        """Test materialize copies the fields a transform needs."""
        credential = UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")

        resolved = credential.materialize(("username", "password"))

        assert resolved.get("username") == "bob"
        assert resolved.get("password") == "s3cr3t"
        assert "s3cr3t" not in repr(resolved)

    def test_materialize_missing_field_is_none(self):
        """Test absent fields materialize as None."""
        credential = SecretTextCredential(id="webhook")

        resolved = credential.materialize(("secret",))

        assert resolved.has("secret") is False

    def test_masked_values(self):
        """Test only passwords and secrets are reported for masking."""
        assert resolved_user("bob", "s3cr3t").masked_values() == ["s3cr3t"]
        assert resolved_user("bob", "").masked_values() == []

    def test_discard_drops_fields(self):
        """Test discard empties the resolved credential."""
        resolved = resolved_user("bob", "s3cr3t")

        resolved.discard()

        assert resolved.field_names == ()
        assert resolved.get("password") is None

    def test_password_hidden_in_repr(self):
        """Test pydantic SecretStr keeps passwords out of repr."""
        credential = UsernamePasswordCredential(id="deploy", username="bob", password="s3cr3t")

        assert "s3cr3t" not in repr(credential)
