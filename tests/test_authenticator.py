"""
Unit tests for the connection authorization decision
"""
from unittest.mock import Mock

import pytest

from hmac_auth.config import VerificationContext
from hmac_auth.models.connection import ConfigStore, RequestFields
from hmac_auth.security.authenticator import (
    AuthOutcome,
    DenialReason,
    HmacAuthenticator,
    current_time_millis,
)
from hmac_auth.security.config_loader import ConfigFileSource, ConfigStoreError
from hmac_auth.security.signature import SignatureVerifier, build_message

from conftest import FakeClock, ONE_MINUTE, TEST_CONNECTION, TEST_SIGNATURE, TEST_TIMESTAMP


def failing_loader():
    raise ConfigStoreError("Error parsing XML file hmac-config.xml")


@pytest.fixture
def authenticator(context, clock):
    return HmacAuthenticator(context, clock=clock)


def sign_for(context, store, name, timestamp):
    message = build_message(
        timestamp, store.lookup(name), context.server_id, context.signed_parameter_names
    )
    return SignatureVerifier(context.shared_secret).sign(message)


class TestAuthorizeSuccess:
    """Test authorized requests"""

    def test_reference_request_is_authorized(self, authenticator, store, valid_fields):
        result = authenticator.authorize(valid_fields, lambda: store)

        assert result.outcome == AuthOutcome.AUTHORIZED
        assert result.authorized is True
        assert result.reason is None
        assert result.configurations.lookup(TEST_CONNECTION).protocol == "rdp"

    def test_result_is_narrowed_to_requested_connection(self, authenticator, store, valid_fields):
        """Only the requested entry is returned, never the full store"""
        result = authenticator.authorize(valid_fields, lambda: store)

        assert len(result.configurations) == 1
        assert result.configurations.names() == [TEST_CONNECTION]

    def test_loaded_store_is_not_mutated(self, authenticator, store, valid_fields):
        authenticator.authorize(valid_fields, lambda: store)

        assert len(store) == 3

    def test_any_connection_signed_correctly(self, authenticator, context, store):
        signature = sign_for(context, store, "vnc-desk", TEST_TIMESTAMP)
        fields = RequestFields(connection_id="vnc-desk", timestamp=TEST_TIMESTAMP, signature=signature)

        result = authenticator.authorize(fields, lambda: store)

        assert result.authorized
        assert result.configurations.names() == ["vnc-desk"]

    def test_future_timestamp_is_accepted(self, authenticator, context, store):
        """Only the age is bounded; timestamps ahead of server time pass"""
        future = str(int(TEST_TIMESTAMP) + 24 * 60 * 60 * 1000)
        fields = RequestFields(
            connection_id=TEST_CONNECTION,
            timestamp=future,
            signature=sign_for(context, store, TEST_CONNECTION, future)
        )

        assert authenticator.authorize(fields, lambda: store).authorized

    def test_store_loaded_once_per_call(self, authenticator, store, valid_fields):
        loader = Mock(return_value=store)

        authenticator.authorize(valid_fields, loader)
        authenticator.authorize(valid_fields, loader)

        assert loader.call_count == 2


class TestAuthorizeDenied:
    """Test denied requests"""

    def test_other_connection_is_denied(self, authenticator, store):
        """Signature built for test-pc does not authorize other-connection"""
        fields = RequestFields(
            connection_id="other-connection",
            timestamp=TEST_TIMESTAMP,
            signature=TEST_SIGNATURE
        )

        result = authenticator.authorize(fields, lambda: store)

        assert result.outcome == AuthOutcome.DENIED
        assert result.configurations is None
        assert result.reason == DenialReason.SIGNATURE_MISMATCH

    def test_missing_signature(self, authenticator, store):
        fields = RequestFields(connection_id=TEST_CONNECTION, timestamp=TEST_TIMESTAMP)

        result = authenticator.authorize(fields, lambda: store)

        assert result.denied
        assert result.reason == DenialReason.MISSING_SIGNATURE

    def test_missing_connection(self, authenticator, store):
        fields = RequestFields(timestamp=TEST_TIMESTAMP, signature=TEST_SIGNATURE)

        result = authenticator.authorize(fields, lambda: store)

        assert result.denied
        assert result.reason == DenialReason.MISSING_CONNECTION

    def test_missing_timestamp(self, authenticator, store):
        fields = RequestFields(connection_id=TEST_CONNECTION, signature=TEST_SIGNATURE)

        result = authenticator.authorize(fields, lambda: store)

        assert result.denied
        assert result.reason == DenialReason.MISSING_TIMESTAMP

    @pytest.mark.parametrize("timestamp", [
        "abc", "1373563683000.0", " 1373563683000", "1_373_563_683_000", "", "9" * 5000
    ])
    def test_malformed_timestamp(self, authenticator, store, timestamp):
        """Non-integer timestamps are denied, never raised"""
        fields = RequestFields(connection_id=TEST_CONNECTION, timestamp=timestamp, signature=TEST_SIGNATURE)

        result = authenticator.authorize(fields, lambda: store)

        assert result.denied
        assert result.reason == DenialReason.MALFORMED_TIMESTAMP

    def test_unknown_connection(self, authenticator, store):
        fields = RequestFields(connection_id="nope", timestamp=TEST_TIMESTAMP, signature=TEST_SIGNATURE)

        result = authenticator.authorize(fields, lambda: store)

        assert result.denied
        assert result.reason == DenialReason.UNKNOWN_CONNECTION

    def test_empty_store_denies(self, authenticator, valid_fields):
        result = authenticator.authorize(valid_fields, lambda: ConfigStore())

        assert result.outcome == AuthOutcome.DENIED

    def test_malformed_signature(self, authenticator, store):
        fields = RequestFields(connection_id=TEST_CONNECTION, timestamp=TEST_TIMESTAMP, signature="%%%")

        result = authenticator.authorize(fields, lambda: store)

        assert result.denied
        assert result.reason == DenialReason.SIGNATURE_MISMATCH

    def test_tampered_timestamp(self, authenticator, store):
        """A fresher timestamp cannot be swapped into an old signature"""
        fields = RequestFields(
            connection_id=TEST_CONNECTION,
            timestamp=str(int(TEST_TIMESTAMP) + 1),
            signature=TEST_SIGNATURE
        )

        assert authenticator.authorize(fields, lambda: store).denied

    def test_other_server_id(self, store, valid_fields, clock):
        """Signatures are bound to the server that verifies them"""
        context = VerificationContext(
            shared_secret=b"secret", server_id="10000002", timestamp_age_limit=ONE_MINUTE
        )

        result = HmacAuthenticator(context, clock=clock).authorize(valid_fields, lambda: store)

        assert result.denied

    def test_denials_are_externally_identical(self, authenticator, store):
        """Different failures differ only in internal diagnostics"""
        unknown = authenticator.authorize(
            RequestFields(connection_id="nope", timestamp=TEST_TIMESTAMP, signature=TEST_SIGNATURE),
            lambda: store
        )
        mismatch = authenticator.authorize(
            RequestFields(connection_id="other-connection", timestamp=TEST_TIMESTAMP, signature=TEST_SIGNATURE),
            lambda: store
        )

        assert unknown.model_dump(exclude={"reason"}) == mismatch.model_dump(exclude={"reason"})


class TestTimestampFreshness:
    """Test the timestamp age window"""

    def test_one_millisecond_before_expiry_is_fresh(self, context, store, valid_fields):
        clock = FakeClock(int(TEST_TIMESTAMP) + ONE_MINUTE - 1)

        result = HmacAuthenticator(context, clock=clock).authorize(valid_fields, lambda: store)

        assert result.authorized

    def test_exact_expiry_is_stale(self, context, store, valid_fields):
        """The window boundary is exclusive"""
        clock = FakeClock(int(TEST_TIMESTAMP) + ONE_MINUTE)

        result = HmacAuthenticator(context, clock=clock).authorize(valid_fields, lambda: store)

        assert result.denied
        assert result.reason == DenialReason.STALE_TIMESTAMP

    def test_zero_limit_disables_expiry(self, store, valid_fields):
        context = VerificationContext(shared_secret=b"secret", server_id="10000001", timestamp_age_limit=0)
        clock = FakeClock(int(TEST_TIMESTAMP) + 365 * 24 * 60 * 60 * 1000)

        result = HmacAuthenticator(context, clock=clock).authorize(valid_fields, lambda: store)

        assert result.authorized

    @pytest.mark.parametrize("timestamp", [None, "abc", "0"])
    def test_zero_limit_passes_any_timestamp(self, store, timestamp):
        context = VerificationContext(shared_secret=b"secret", server_id="10000001", timestamp_age_limit=0)

        assert HmacAuthenticator(context).check_timestamp(timestamp) is None

    def test_zero_limit_signs_over_absent_timestamp(self, store):
        """Without expiry a signer may omit the timestamp entirely"""
        context = VerificationContext(shared_secret=b"secret", server_id="10000001", timestamp_age_limit=0)
        fields = RequestFields(
            connection_id=TEST_CONNECTION,
            signature=sign_for(context, store, TEST_CONNECTION, None)
        )

        assert HmacAuthenticator(context).authorize(fields, lambda: store).authorized

    def test_default_clock_uses_wall_time(self, context):
        authenticator = HmacAuthenticator(context)

        assert authenticator.check_timestamp(str(current_time_millis())) is None
        assert authenticator.check_timestamp("0") == DenialReason.STALE_TIMESTAMP


class TestServerError:
    """Test configuration failures"""

    def test_load_failure_is_server_error(self, authenticator, valid_fields):
        result = authenticator.authorize(valid_fields, failing_loader)

        assert result.outcome == AuthOutcome.SERVER_ERROR
        assert result.server_error is True
        assert result.denied is False
        assert result.configurations is None

    def test_undecodable_config_file_is_server_error(self, authenticator, valid_fields, tmp_path):
        path = tmp_path / "hmac-config.xml"
        path.write_bytes(b'<configs><config name="a\xff" protocol="rdp"/></configs>')

        result = authenticator.authorize(valid_fields, ConfigFileSource(str(path)))

        assert result.server_error

    def test_load_failure_checked_before_request_fields(self, authenticator):
        """A broken configuration is reported even for empty requests"""
        result = authenticator.authorize(RequestFields(), failing_loader)

        assert result.outcome == AuthOutcome.SERVER_ERROR

    def test_unexpected_errors_propagate(self, authenticator, valid_fields):
        """Only ConfigStoreError is converted into an outcome"""
        def broken():
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            authenticator.authorize(valid_fields, broken)


class TestAuditTrail:
    """Test that outcomes reach the audit logger"""

    def test_denial_reason_is_logged(self, context, clock, store):
        audit = Mock()
        authenticator = HmacAuthenticator(context, clock=clock, audit=audit)

        authenticator.authorize(RequestFields(connection_id=TEST_CONNECTION), lambda: store)

        audit.log_denied.assert_called_once_with(TEST_CONNECTION, "missing_signature")

    def test_success_is_logged(self, context, clock, store, valid_fields):
        audit = Mock()
        authenticator = HmacAuthenticator(context, clock=clock, audit=audit)

        authenticator.authorize(valid_fields, lambda: store)

        audit.log_authorized.assert_called_once_with(TEST_CONNECTION)

    def test_server_error_is_logged(self, context, clock, valid_fields):
        audit = Mock()
        authenticator = HmacAuthenticator(context, clock=clock, audit=audit)

        authenticator.authorize(valid_fields, failing_loader)

        audit.log_server_error.assert_called_once()
        audit.log_denied.assert_not_called()
