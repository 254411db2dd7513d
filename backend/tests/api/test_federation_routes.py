"""Federation wire routes — WebFinger, actor, inbox, collections, health."""

import json
from email.utils import formatdate

from peerlink.core.domain_types import INBOX_PATH
from tests.fake_network import wait_until


async def test_health_shape(client):
    res = await client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "healthy"
    assert body["version"] == "1.0.0"
    assert body["network"] == {
        "total_instances": 1, "healthy_instances": 0, "health_percentage": 0.0,
    }
    assert "federation" in body["capabilities"]


async def test_webfinger_for_own_resource(client):
    res = await client.get(
        "/.well-known/webfinger", params={"resource": "acct:peerlink@local.test"},
    )
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/jrd+json")
    body = res.json()
    assert body["subject"] == "acct:peerlink@local.test"
    assert body["links"][0] == {
        "rel": "self", "type": "application/activity+json",
        "href": "https://local.test/api/federation/actor",
    }


async def test_webfinger_unknown_domain_is_404(client):
    res = await client.get(
        "/.well-known/webfinger", params={"resource": "acct:peerlink@other.test"},
    )
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "NOT_FOUND"
    assert res.json()["error"]["category"] == "resource_not_found"


async def test_webfinger_malformed_resource_is_400(client):
    res = await client.get("/.well-known/webfinger", params={"resource": "peerlink"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "BAD_REQUEST"


async def test_webfinger_requires_resource(client):
    res = await client.get("/.well-known/webfinger")
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_actor_document_exposes_public_key(client, node):
    res = await client.get("/api/federation/actor")
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/activity+json")
    body = res.json()
    assert body["id"] == "https://local.test/api/federation/actor"
    assert body["publicKey"]["publicKeyPem"] == node.identities.local.public_key_pem
    assert body["inbox"] == "https://local.test/api/federation/inbox"


async def test_signed_inbox_post_is_accepted(client, node, network):
    peer = network.add("peer.example")
    body = json.dumps({
        "id": "https://peer.example/activities/1",
        "type": "PeerAnnounce",
        "actor": peer.actor_url,
    })
    headers = {"host": "local.test", "date": formatdate(usegmt=True)}
    headers["signature"] = peer.sign_headers("POST", INBOX_PATH, headers)
    headers["content-type"] = "application/activity+json"

    res = await client.post(INBOX_PATH, content=body, headers=headers)

    assert res.status_code == 202
    assert res.json() == {"status": "accepted"}
    await wait_until(lambda: node.registry.contains("peer.example"))


async def test_unsigned_inbox_post_is_rejected(client):
    res = await client.post(INBOX_PATH, json={"type": "PeerAnnounce"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_SIGNATURE_HEADER"


async def test_badly_signed_inbox_post_is_rejected(client, network):
    peer = network.add("peer.example")
    headers = {"host": "local.test", "date": formatdate(usegmt=True)}
    headers["signature"] = peer.sign_headers("POST", "/somewhere/else", headers)
    res = await client.post(
        INBOX_PATH, json={"type": "PeerAnnounce", "actor": peer.actor_url}, headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_SIGNATURE"


async def test_invalid_json_is_rejected(client):
    res = await client.post(INBOX_PATH, content=b"{not json")
    assert res.status_code == 400


async def test_non_object_body_is_rejected(client):
    res = await client.post(INBOX_PATH, json=[1, 2])
    assert res.status_code == 400


async def test_following_lists_known_peer_actors(client, node, network):
    network.add("peer.example")
    await node.coordinator.discover_instance("peer.example", wait=True)

    res = await client.get("/api/federation/following")

    body = res.json()
    assert body["type"] == "OrderedCollection"
    assert body["orderedItems"] == ["https://peer.example/api/federation/actor"]
    assert body["totalItems"] == 1


async def test_outbox_and_followers_are_empty_collections(client):
    for name in ("outbox", "followers"):
        body = (await client.get(f"/api/federation/{name}")).json()
        assert body["totalItems"] == 0
        assert body["orderedItems"] == []
