import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from apriltag_node.control import MqttParameterChannel, parse_assignments, parse_updates
from tag_pipeline.params import ConfigurationStore


def test_parse_updates_from_object():
    updates = parse_updates(b'{"detector.decimate": 1.0, "z_up": false}')
    assert updates == [("detector.decimate", 1.0), ("z_up", False)]


def test_parse_updates_from_named_list():
    payload = json.dumps([
        {"name": "max_hamming", "value": 2},
        {"name": "profile"},
        "junk",
        {"name": "enabled", "value": False},
    ])
    assert parse_updates(payload) == [("max_hamming", 2), ("enabled", False)]


@pytest.mark.parametrize("payload", [b"not json", b"\xff\xfe", b"42", b'"z_up"'])
def test_parse_updates_rejects_other_messages(payload):
    assert parse_updates(payload) == []


def test_parse_assignments_types_values():
    updates = parse_assignments(["z_up=false", "detector.decimate=1.5", "max_hamming=2", "detector.threads="])
    assert updates == [
        ("z_up", False),
        ("detector.decimate", 1.5),
        ("max_hamming", 2),
        ("detector.threads", ""),
    ]


@pytest.mark.parametrize("item", ["z_up", "=1"])
def test_parse_assignments_rejects_malformed(item):
    with pytest.raises(ValueError):
        parse_assignments([item])


def test_channel_subscribes_and_applies_messages():
    client = MagicMock()
    store = ConfigurationStore()
    channel = MqttParameterChannel(client, store.apply_updates, topic_prefix="lab/")

    channel.start()
    client.message_callback_add.assert_called_once_with("lab/parameters", channel._on_message)
    client.subscribe.assert_called_once_with("lab/parameters", 0)

    message = SimpleNamespace(payload=b'{"detector.threads": 3, "bogus": 1}')
    channel._on_message(client, None, message)
    assert store.detector.threads == 3

    channel.stop()
    client.message_callback_remove.assert_called_once_with("lab/parameters")
    client.unsubscribe.assert_called_once_with("lab/parameters")


def test_channel_resubscribes_on_connect():
    client = MagicMock()
    channel = MqttParameterChannel(client, MagicMock(), qos=1)

    channel._on_connect(client, None, {}, 0, None)

    client.subscribe.assert_called_once_with("apriltag/parameters", 1)


def test_channel_skips_empty_batches():
    apply = MagicMock()
    channel = MqttParameterChannel(MagicMock(), apply)

    channel._on_message(None, None, SimpleNamespace(payload=b"[]"))

    apply.assert_not_called()
