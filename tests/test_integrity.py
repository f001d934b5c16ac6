"""Tests for snapshot hashing and message checks."""

from dataclasses import replace

from keepchat_sync.core import Message
from keepchat_sync.integrity import compute_snapshot_hash, verify_messages, verify_snapshot


def test_hash_is_stable_across_version_stamps(make_message, make_snapshot):
    first = make_snapshot([make_message("m1", "Hello")], number=3)
    second = make_snapshot([make_message("m1", "Hello")], number=9, device="desktop")
    assert compute_snapshot_hash(first) == compute_snapshot_hash(second)
    assert len(compute_snapshot_hash(first)) == 64


def test_hash_tracks_content(make_message, make_snapshot):
    a = make_snapshot([make_message("m1", "Hello")])
    b = make_snapshot([make_message("m1", "Hello!")])
    assert compute_snapshot_hash(a) != compute_snapshot_hash(b)


def test_verify_snapshot(make_message, make_snapshot):
    snapshot = make_snapshot([make_message("m1")])
    assert verify_snapshot(snapshot)

    signed = replace(snapshot, meta=replace(snapshot.meta, hash=compute_snapshot_hash(snapshot)))
    assert verify_snapshot(signed)

    tampered = replace(signed, messages=(make_message("m1", "tampered"),))
    assert not verify_snapshot(tampered)


def test_verify_messages_clean(shared_messages):
    assert verify_messages(shared_messages) == []


def test_verify_messages_reports_problems(make_message):
    messages = [
        make_message("m1", minutes=5),
        Message(id="", role="robot", content="x", created_at=None),
        make_message("m3", minutes=1),
    ]
    issues = verify_messages(messages)
    assert "Message 1 missing id" in issues
    assert "Message 1 has invalid role: robot" in issues
    assert "Message 1 missing created_at timestamp" in issues


def test_verify_messages_order(make_message):
    issues = verify_messages([make_message("m1", minutes=5), make_message("m2", minutes=1)])
    assert issues == ["Messages are not chronologically ordered"]
