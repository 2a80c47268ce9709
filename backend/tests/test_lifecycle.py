"""Tests for the per-connection state machine (no sockets involved)."""
import json

import pytest

from app.realtime.lifecycle import ConnectionLifecycleManager, ConnectionState


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def connect(coordinator, resolver, make_handle):
    """Open a fake connection; returns ``(lifecycle, handle)``."""
    def _connect(name="conn", connect_token=None):
        handle = make_handle(name)
        lifecycle = ConnectionLifecycleManager(
            handle, coordinator, resolver, connect_token=connect_token
        )
        return lifecycle, handle
    return _connect


def signin(lifecycle, tokens, user):
    lifecycle.handle_frame(json.dumps({
        "type": "signin", "userId": user.id, "token": tokens.issue(user.id),
    }))


class TestSignin:

    def test_signin_registers_and_acks(self, connect, tokens, registry, alice):
        lifecycle, handle = connect()
        signin(lifecycle, tokens, alice)

        assert lifecycle.state is ConnectionState.SIGNED_IN
        assert registry.lookup(alice.id) is handle
        assert handle.of_type("signed_in") == [
            {"type": "signed_in", "userId": alice.id, "onlineUsers": [alice.id]}
        ]

    def test_signin_broadcasts_online_to_others_only(self, connect, tokens, alice, bob):
        la, ha = connect("a")
        lb, hb = connect("b")
        signin(la, tokens, alice)
        signin(lb, tokens, bob)

        assert ha.of_type("user_online") == [{"type": "user_online", "userId": bob.id}]
        assert hb.of_type("user_online") == []
        assert hb.of_type("signed_in")[0]["onlineUsers"] == sorted([alice.id, bob.id])

    def test_signin_uses_connect_token_when_event_has_none(
        self, connect, tokens, registry, alice
    ):
        lifecycle, handle = connect(connect_token=tokens.issue(alice.id))
        lifecycle.handle_frame({"type": "signin"})
        assert lifecycle.user_id == alice.id
        assert registry.is_online(alice.id)

    def test_signin_without_any_token_is_rejected(self, connect, registry):
        lifecycle, handle = connect()
        lifecycle.handle_frame({"type": "signin", "userId": "someone"})

        assert lifecycle.state is ConnectionState.UNAUTHENTICATED
        assert handle.of_type("error") == [
            {"type": "error", "error": "No token provided", "code": "unauthenticated"}
        ]
        assert len(registry) == 0

    def test_signin_with_bad_token_is_rejected(self, connect, registry):
        lifecycle, handle = connect()
        lifecycle.handle_frame({"type": "signin", "token": "garbage"})
        assert handle.of_type("error")[0]["code"] == "unauthenticated"
        assert len(registry) == 0

    def test_signin_user_id_must_match_token(self, connect, tokens, registry, alice, bob):
        lifecycle, handle = connect()
        lifecycle.handle_frame({
            "type": "signin", "userId": bob.id, "token": tokens.issue(alice.id),
        })
        assert handle.of_type("error")[0]["code"] == "unauthenticated"
        assert not registry.is_online(alice.id)
        assert not registry.is_online(bob.id)

    def test_repeat_signin_same_user_acks_without_second_broadcast(
        self, connect, tokens, alice, bob
    ):
        lb, hb = connect("b")
        signin(lb, tokens, bob)
        la, ha = connect("a")
        signin(la, tokens, alice)
        signin(la, tokens, alice)

        assert len(ha.of_type("signed_in")) == 2
        assert len(hb.of_type("user_online")) == 1

    def test_signin_as_another_user_on_same_connection_is_forbidden(
        self, connect, tokens, registry, alice, bob
    ):
        lifecycle, handle = connect()
        signin(lifecycle, tokens, alice)
        signin(lifecycle, tokens, bob)

        assert handle.of_type("error")[0]["code"] == "forbidden"
        assert lifecycle.user_id == alice.id
        assert not registry.is_online(bob.id)


class TestEventsRequireSignin:

    @pytest.mark.parametrize("frame", [
        {"type": "send_message", "senderId": "x", "receiverId": "y", "content": "hi"},
        {"type": "typing", "receiverId": "y", "isTyping": True},
        {"type": "mark_read", "messageId": "m"},
    ])
    def test_event_before_signin_rejected(self, connect, messages, frame):
        lifecycle, handle = connect()
        lifecycle.handle_frame(frame)

        assert lifecycle.state is ConnectionState.UNAUTHENTICATED
        [error] = [f for f in handle.frames if f["type"] in ("error", "message_error")]
        assert error["code"] == "unauthenticated"

    def test_malformed_frame_answered_and_connection_kept(self, connect, tokens, alice):
        lifecycle, handle = connect()
        signin(lifecycle, tokens, alice)
        lifecycle.handle_frame("this is not json")

        assert handle.of_type("error")[0]["code"] == "malformed_event"
        assert lifecycle.state is ConnectionState.SIGNED_IN


class TestSendMessage:

    def test_send_over_connection(self, connect, tokens, messages, alice, bob):
        la, ha = connect("a")
        lb, hb = connect("b")
        signin(la, tokens, alice)
        signin(lb, tokens, bob)

        la.handle_frame({
            "type": "send_message", "senderId": alice.id, "receiverId": bob.id,
            "content": "hello bob",
        })

        [received] = hb.of_type("receive_message")
        [acked] = ha.of_type("message_sent")
        assert received["content"] == "hello bob"
        assert received["id"] == acked["id"]
        assert messages.get(acked["id"]).isDelivered is True

    def test_sender_id_must_match_connection(self, connect, tokens, alice, bob):
        la, ha = connect("a")
        signin(la, tokens, alice)
        la.handle_frame({
            "type": "send_message", "senderId": bob.id, "receiverId": alice.id,
            "content": "spoofed",
        })
        assert ha.of_type("message_error")[0]["code"] == "forbidden"
        assert ha.of_type("message_sent") == []

    def test_unknown_recipient_gives_message_error(self, connect, tokens, alice):
        la, ha = connect("a")
        signin(la, tokens, alice)
        la.handle_frame({
            "type": "send_message", "senderId": alice.id, "receiverId": "nobody",
            "content": "hello?",
        })
        assert ha.of_type("message_error") == [{
            "type": "message_error",
            "error": "Receiver nobody not found",
            "code": "recipient_not_found",
        }]

    def test_malformed_send_gives_message_error(self, connect, tokens, alice, bob):
        la, ha = connect("a")
        signin(la, tokens, alice)
        la.handle_frame({"type": "send_message", "senderId": alice.id, "receiverId": bob.id})
        assert ha.of_type("message_error")[0]["code"] == "malformed_event"
        assert ha.of_type("error") == []

    def test_malformed_send_before_signin_gives_message_error(self, connect):
        la, ha = connect("a")
        la.handle_frame('{"type": "send_message", "content": ""}')
        [error] = ha.of_type("message_error")
        assert error["code"] == "malformed_event"

    def test_content_whitespace_preserved(self, connect, tokens, messages, alice, bob):
        la, ha = connect("a")
        signin(la, tokens, alice)
        la.handle_frame({
            "type": "send_message", "senderId": alice.id, "receiverId": bob.id,
            "content": "    indented code\n",
        })
        [acked] = ha.of_type("message_sent")
        assert messages.get(acked["id"]).content == "    indented code\n"

    def test_ack_goes_to_sending_connection_after_reconnect(
        self, connect, tokens, alice, bob
    ):
        old, old_handle = connect("old")
        new, new_handle = connect("new")
        signin(old, tokens, alice)
        signin(new, tokens, alice)

        old.handle_frame({
            "type": "send_message", "senderId": alice.id, "receiverId": bob.id,
            "content": "from the old tab",
        })

        assert [f["content"] for f in old_handle.of_type("message_sent")] == ["from the old tab"]
        assert new_handle.of_type("message_sent") == []


class TestTypingAndReceipts:

    def test_typing_relayed_to_online_receiver(self, connect, tokens, alice, bob):
        la, ha = connect("a")
        lb, hb = connect("b")
        signin(la, tokens, alice)
        signin(lb, tokens, bob)

        la.handle_frame({"type": "typing", "receiverId": bob.id, "isTyping": True})

        assert hb.of_type("user_typing") == [{
            "type": "user_typing", "senderId": alice.id,
            "senderName": "Alice", "isTyping": True,
        }]

    def test_typing_to_offline_receiver_is_dropped(self, connect, tokens, alice, bob):
        la, ha = connect("a")
        signin(la, tokens, alice)
        la.handle_frame({"type": "typing", "receiverId": bob.id, "isTyping": False})
        assert ha.of_type("error") == []

    def test_mark_read_sends_single_receipt(self, connect, tokens, coordinator, alice, bob):
        la, ha = connect("a")
        lb, hb = connect("b")
        signin(la, tokens, alice)
        signin(lb, tokens, bob)
        message = coordinator.send(alice.id, bob.id, "read me")

        lb.handle_frame({"type": "mark_read", "messageId": message.id})
        lb.handle_frame({"type": "mark_read", "messageId": message.id})

        assert ha.of_type("message_read") == [{"type": "message_read", "messageId": message.id}]

    def test_mark_read_unknown_message(self, connect, tokens, alice):
        la, ha = connect("a")
        signin(la, tokens, alice)
        la.handle_frame({"type": "mark_read", "messageId": "nope"})
        assert ha.of_type("error")[0]["code"] == "message_not_found"


class TestDisconnect:

    def test_disconnect_unregisters_and_broadcasts_offline(
        self, connect, tokens, registry, alice, bob
    ):
        la, ha = connect("a")
        lb, hb = connect("b")
        signin(la, tokens, alice)
        signin(lb, tokens, bob)

        la.disconnect()

        assert la.state is ConnectionState.DISCONNECTED
        assert not registry.is_online(alice.id)
        assert hb.of_type("user_offline") == [{"type": "user_offline", "userId": alice.id}]

    def test_disconnect_before_signin_is_silent(self, connect, tokens, bob):
        lb, hb = connect("b")
        signin(lb, tokens, bob)
        la, ha = connect("a")

        la.disconnect()

        assert la.state is ConnectionState.DISCONNECTED
        assert hb.of_type("user_offline") == []

    def test_stale_disconnect_keeps_newer_connection(
        self, connect, tokens, registry, alice, bob
    ):
        lb, hb = connect("b")
        signin(lb, tokens, bob)
        old, old_handle = connect("old")
        new, new_handle = connect("new")
        signin(old, tokens, alice)
        signin(new, tokens, alice)

        old.disconnect()

        assert registry.lookup(alice.id) is new_handle
        assert hb.of_type("user_offline") == []

        new.disconnect()
        assert hb.of_type("user_offline") == [{"type": "user_offline", "userId": alice.id}]

    def test_frames_after_disconnect_are_ignored(self, connect, tokens, alice):
        la, ha = connect("a")
        signin(la, tokens, alice)
        la.disconnect()
        frames_before = list(ha.frames)

        la.handle_frame({"type": "typing", "receiverId": "x", "isTyping": True})
        la.disconnect()

        assert ha.frames == frames_before
