"""Federation Wire Routes — WebFinger, actor document, inbox and collections peers talk to.

Invariants:
    - WebFinger answers only for our own acct: resource (404 other domains, 400 malformed)
    - Inbox rejects unparseable JSON and unverifiable signatures with 400, accepts with 202
    - Wire documents are served as application/activity+json or application/jrd+json
    - following lists the actor URLs of every known peer (the peer-exchange source)

Design Decisions:
    - Inbox reads the raw body: the signature covers the request as sent, so FastAPI body
      coercion must not run before verification
    - Verification errors propagate to the global PeerLinkError handler (uniform error shape)
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from peerlink.core.domain_types import (
    ACTIVITY_CONTENT_TYPE,
    ACTIVITYSTREAMS_CONTEXT,
    FEDERATION_PREFIX,
    JRD_CONTENT_TYPE,
    WEBFINGER_PATH,
)
from peerlink.core.peer_instance import base_url, build_actor_document
from peerlink.core.webfinger import build_local_webfinger, parse_resource
from peerlink.services.runtime import FederationRuntime, get_runtime

logger = logging.getLogger(__name__)

webfinger_router = APIRouter(tags=["federation"])
router = APIRouter(prefix=FEDERATION_PREFIX, tags=["federation"])


@webfinger_router.get(WEBFINGER_PATH)
async def webfinger(
    resource: str = Query(..., min_length=1),
    rt: FederationRuntime = Depends(get_runtime),
):
    """JRD for acct:<service>@<local domain>."""
    settings = rt.settings
    domain = parse_resource(resource, settings.service_name)
    if domain is None:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, detail="Malformed WebFinger resource",
        )
    if domain != settings.local_domain:
        raise HTTPException(
            status.HTTP_404_NOT_FOUND, detail="Unknown WebFinger resource",
        )
    return JSONResponse(
        content=build_local_webfinger(
            domain, settings.service_name, settings.url_scheme,
        ),
        media_type=JRD_CONTENT_TYPE,
    )


@router.get("/actor")
async def actor(rt: FederationRuntime = Depends(get_runtime)):
    document = build_actor_document(
        rt.coordinator.local_instance, rt.settings.url_scheme,
    )
    return JSONResponse(content=document, media_type=ACTIVITY_CONTENT_TYPE)


@router.post("/inbox", status_code=status.HTTP_202_ACCEPTED)
async def inbox(request: Request, rt: FederationRuntime = Depends(get_runtime)):
    """Verify the HTTP signature, then dispatch the activity."""
    raw = await request.body()
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, detail="Body is not valid JSON",
        )
    if not isinstance(document, dict):
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST, detail="Activity must be a JSON object",
        )

    activity = await rt.inbox.receive(
        document,
        request.headers.get("signature"),
        request.method,
        request.url.path,
        request.headers,
    )
    logger.info(
        f"Inbox accepted {document.get('type')!r}",
        extra={"domain": activity.actor_domain, "path": request.url.path},
    )
    return {"status": "accepted"}


def _collection(rt: FederationRuntime, name: str, items: list[str]) -> JSONResponse:
    root = base_url(rt.settings.local_domain, rt.settings.url_scheme)
    return JSONResponse(
        content={
            "@context": ACTIVITYSTREAMS_CONTEXT,
            "id": f"{root}{FEDERATION_PREFIX}/{name}",
            "type": "OrderedCollection",
            "totalItems": len(items),
            "orderedItems": items,
        },
        media_type=ACTIVITY_CONTENT_TYPE,
    )


@router.get("/outbox")
async def outbox(rt: FederationRuntime = Depends(get_runtime)):
    return _collection(rt, "outbox", [])


@router.get("/followers")
async def followers(rt: FederationRuntime = Depends(get_runtime)):
    return _collection(rt, "followers", [])


@router.get("/following")
async def following(rt: FederationRuntime = Depends(get_runtime)):
    """Actor URLs of every known peer."""
    peers = await rt.coordinator.get_known_instances()
    return _collection(rt, "following", [p.actor_url for p in peers])
