from unittest.mock import MagicMock

import pytest

from ac_store.addresses import AddressError, AddressType

HOME = dict(line1="12 MG Road", city="Bengaluru", state="KA", zip_code="560001")


def test_add_and_list(directory, alice):
    saved = directory.add(alice.uid, type="Work", line2="Floor 3", **HOME)
    assert saved.type is AddressType.WORK
    assert saved.country == "India"
    assert directory.list(alice.uid) == [saved]
    assert saved.one_line() == "12 MG Road, Floor 3, Bengaluru, KA 560001, India"


def test_blank_line2_is_none(directory, alice):
    assert directory.add(alice.uid, line2="  ", **HOME).line2 is None


@pytest.mark.parametrize("missing", ["line1", "city", "state", "zip_code"])
def test_required_fields(directory, alice, missing):
    fields = dict(HOME, **{missing: "  "})
    with pytest.raises(AddressError, match=missing):
        directory.add(alice.uid, **fields)


def test_unknown_type(directory, alice):
    with pytest.raises(AddressError):
        directory.add(alice.uid, type="Moon", **HOME)


def test_addresses_are_per_user(directory, alice, bob):
    directory.add(alice.uid, **HOME)
    assert directory.list(bob.uid) == []


def test_new_default_replaces_old(directory, alice):
    first = directory.add(alice.uid, is_default=True, **HOME)
    second = directory.add(alice.uid, is_default=True, **HOME)
    defaults = {a.id: a.is_default for a in directory.list(alice.uid)}
    assert defaults == {first.id: False, second.id: True}


def test_set_default(directory, alice):
    first = directory.add(alice.uid, is_default=True, **HOME)
    second = directory.add(alice.uid, **HOME)
    directory.set_default(alice.uid, second.id)
    assert [a.is_default for a in directory.list(alice.uid)] == [False, True]
    assert first.id != second.id


def test_set_default_of_someone_elses_address(directory, alice, bob):
    saved = directory.add(alice.uid, **HOME)
    with pytest.raises(AddressError):
        directory.set_default(bob.uid, saved.id)


def test_remove(directory, alice, bob):
    saved = directory.add(alice.uid, **HOME)
    with pytest.raises(AddressError):
        directory.remove(bob.uid, saved.id)
    directory.remove(alice.uid, saved.id)
    assert directory.list(alice.uid) == []


class TestSubscribe:
    def test_immediate_snapshot_then_updates(self, directory, alice):
        listener = MagicMock()
        directory.subscribe(alice.uid, listener)
        listener.assert_called_once_with([])
        saved = directory.add(alice.uid, **HOME)
        assert listener.call_args[0][0] == [saved]
        directory.remove(alice.uid, saved.id)
        assert listener.call_args[0][0] == []
        assert listener.call_count == 3

    def test_other_users_changes_are_not_delivered(self, directory, alice, bob):
        listener = MagicMock()
        directory.subscribe(alice.uid, listener)
        directory.add(bob.uid, **HOME)
        assert listener.call_count == 1

    def test_unsubscribe_stops_delivery_and_is_idempotent(self, directory, alice):
        listener = MagicMock()
        sub = directory.subscribe(alice.uid, listener)
        sub.unsubscribe()
        sub.unsubscribe()
        assert not sub.active
        assert directory.subscriber_count(alice.uid) == 0
        directory.add(alice.uid, **HOME)
        assert listener.call_count == 1

    def test_initial_fetch_error_goes_to_on_error(self, directory, alice, monkeypatch):
        listener, on_error = MagicMock(), MagicMock()
        monkeypatch.setattr(directory, "list", MagicMock(side_effect=RuntimeError("boom")))
        directory.subscribe(alice.uid, listener, on_error=on_error)
        listener.assert_not_called()
        assert isinstance(on_error.call_args[0][0], RuntimeError)

    def test_failing_listener_does_not_break_others(self, directory, alice):
        bad = MagicMock(side_effect=[None, RuntimeError("listener bug")])
        good = MagicMock()
        directory.subscribe(alice.uid, bad)
        directory.subscribe(alice.uid, good)
        directory.add(alice.uid, **HOME)
        assert good.call_count == 2
