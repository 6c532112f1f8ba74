from unittest.mock import MagicMock

import pytest

from ac_store.identity import AuthError, IdentityProvider


class TestRegister:
    def test_display_name_is_reread(self, identities):
        identity = identities.register("  Carol@Example.com ", "secret123", "Carol")
        assert identity.email == "carol@example.com"
        assert identity.display_name == "Carol"
        assert identities.load(identity.uid) == identity

    def test_without_name(self, identities):
        assert identities.register("dan@example.com", "secret123").display_name == ""

    def test_short_password(self, identities):
        with pytest.raises(AuthError, match="at least 6"):
            identities.register("erin@example.com", "123")

    def test_duplicate_email(self, identities, alice):
        with pytest.raises(AuthError, match="already exists"):
            identities.register("ALICE@example.com", "another1")

    def test_missing_fields(self, identities):
        with pytest.raises(AuthError, match="Email and password required."):
            identities.register("", "secret123")


class TestSignIn:
    def test_ok(self, identities, alice):
        assert identities.sign_in("alice@example.com", "secret123") == alice

    def test_wrong_password(self, identities, alice):
        with pytest.raises(AuthError, match="Invalid email or password."):
            identities.sign_in("alice@example.com", "wrong-password")

    def test_unknown_email(self, identities):
        with pytest.raises(AuthError, match="Invalid email or password."):
            identities.sign_in("nobody@example.com", "secret123")

    def test_blank(self, identities):
        with pytest.raises(AuthError, match="Email and password required."):
            identities.sign_in("alice@example.com", "")


class TestFederated:
    def claims(self, **overrides):
        claims = {"aud": "test-client", "sub": "g-123", "email": "gina@example.com",
                  "email_verified": "true", "name": "Gina"}
        claims.update(overrides)
        return claims

    def provider(self, engine, claims):
        return IdentityProvider(engine, google_client_id="test-client", verifier=MagicMock(return_value=claims))

    def test_creates_account(self, engine):
        identity = self.provider(engine, self.claims()).sign_in_with_federated_provider("tok")
        assert identity.email == "gina@example.com"
        assert identity.display_name == "Gina"

    def test_same_subject_same_account(self, engine):
        provider = self.provider(engine, self.claims())
        first = provider.sign_in_with_federated_provider("tok")
        assert provider.sign_in_with_federated_provider("tok").uid == first.uid

    def test_links_existing_email_account(self, engine, identities, alice):
        provider = self.provider(engine, self.claims(email="alice@example.com", name="Other"))
        identity = provider.sign_in_with_federated_provider("tok")
        assert identity.uid == alice.uid
        assert identity.display_name == "Alice"

    def test_wrong_audience(self, engine):
        with pytest.raises(AuthError):
            self.provider(engine, self.claims(aud="someone-else")).sign_in_with_federated_provider("tok")

    def test_unverified_email(self, engine):
        with pytest.raises(AuthError, match="not verified"):
            self.provider(engine, self.claims(email_verified="false")).sign_in_with_federated_provider("tok")

    def test_not_configured(self, engine):
        with pytest.raises(AuthError, match="not configured"):
            IdentityProvider(engine).sign_in_with_federated_provider("tok")


class TestListeners:
    def test_sign_in_and_out_are_broadcast(self, identities, alice):
        listener = MagicMock()
        sub = identities.subscribe(listener)
        identities.sign_in("alice@example.com", "secret123")
        listener.assert_called_with(alice.uid, alice)
        identities.sign_out(alice)
        listener.assert_called_with(alice.uid, None)
        sub.unsubscribe()
        identities.sign_in("alice@example.com", "secret123")
        assert listener.call_count == 2

    def test_sign_out_of_nobody_is_silent(self, identities):
        listener = MagicMock()
        identities.subscribe(listener)
        identities.sign_out(None)
        listener.assert_not_called()


def test_resolve(identities, alice):
    state = identities.resolve(alice.uid)
    assert state.is_authenticated and not state.loading
    assert not identities.resolve(None).is_authenticated
    assert identities.load("not-a-number") is None
