"""Activity Delivery — discover, fetch actor, sign, POST inbox; every failure is DeliveryFailedError."""

import json

import pytest

from peerlink.core.errors import DeliveryFailedError
from peerlink.core.signatures import parse_signature_header

ACTIVITY = {"id": "https://local.test/activities/1", "type": "PeerAnnounce"}


async def test_delivery_posts_signed_activity_to_inbox(runtime, network):
    peer = network.add("peer.example")

    result = await runtime.deliverer.deliver("peer.example", ACTIVITY)

    assert result["status_code"] == 202
    assert result["inbox"] == "https://peer.example/api/federation/inbox"
    assert len(peer.inbox_requests) == 1
    request = peer.inbox_requests[0]
    assert json.loads(request.content) == ACTIVITY
    assert request.headers["content-type"] == "application/activity+json"
    fields = parse_signature_header(request.headers["signature"])
    assert fields["keyId"] == "https://local.test/api/federation/actor#main-key"
    assert fields["headers"] == "(request-target) host date"


async def test_receiver_can_verify_the_signature(runtime, network):
    peer = network.add("peer.example")
    await runtime.deliverer.deliver("peer.example", ACTIVITY)
    request = peer.inbox_requests[0]

    signer = await runtime.identities.verify_request(
        request.headers["signature"], "POST", request.url.path, request.headers,
    )
    assert signer == "local.test"


async def test_target_public_key_is_cached(runtime, network):
    peer = network.add("peer.example")
    await runtime.deliverer.deliver("peer.example", ACTIVITY)
    assert runtime.identities.public_key_for("peer.example") == peer.public_key_pem


async def test_inbox_error_status_fails(runtime, network):
    network.add("peer.example").inbox_status = 500
    with pytest.raises(DeliveryFailedError) as exc:
        await runtime.deliverer.deliver("peer.example", ACTIVITY)
    assert exc.value.status_code == 500


async def test_discovery_failure_becomes_delivery_failure(runtime, network):
    network.add("peer.example").webfinger_status = 404
    with pytest.raises(DeliveryFailedError) as exc:
        await runtime.deliverer.deliver("peer.example", ACTIVITY)
    assert "HTTP 404" in exc.value.reason


async def test_unreachable_target_fails(runtime):
    with pytest.raises(DeliveryFailedError):
        await runtime.deliverer.deliver("nowhere.test", ACTIVITY)
