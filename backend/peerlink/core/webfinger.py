"""WebFinger Rules — pure resource, validation and self-link resolution logic (RFC 7033).

Invariants:
    - A profile is valid only if subject == queried resource AND an activity+json self link exists
    - Validation order is fixed: subject first, then self link
    - resolve_actor_url never mutates the document and never does IO

Design Decisions:
    - Pure functions split from the HTTP client (ADR: core never imports httpx)
    - Self link match requires both rel and type: a bare rel="self" HTML link is not an actor
"""

from peerlink.core.domain_types import (
    ACTIVITY_CONTENT_TYPE,
    PROFILE_PAGE_REL,
    SELF_REL,
    Domain,
    normalize_domain,
)
from peerlink.core.errors import (
    InvalidSubjectError,
    MissingSelfLinkError,
    NoActorUrlError,
)
from peerlink.core.peer_instance import actor_url_for, base_url


def build_resource(service_name: str, domain: str) -> str:
    """acct:<service>@<domain> — the queried resource and expected subject."""
    return f"acct:{service_name}@{domain}"


def parse_resource(resource: str, service_name: str) -> Domain | None:
    """Domain from an acct: resource for our service, or None when malformed."""
    prefix = f"acct:{service_name}@"
    if not resource.startswith(prefix):
        return None
    domain = resource[len(prefix):]
    if not domain or "@" in domain or "/" in domain:
        return None
    return normalize_domain(domain)


def _self_link(profile: dict) -> dict | None:
    links = profile.get("links")
    if not isinstance(links, list):
        return None
    for link in links:
        if (isinstance(link, dict)
                and link.get("rel") == SELF_REL
                and link.get("type") == ACTIVITY_CONTENT_TYPE):
            return link
    return None


def validate_profile(profile: dict, resource: str, domain: str) -> dict:
    """Return profile unchanged if valid; raise InvalidSubject / MissingSelfLink otherwise."""
    subject = profile.get("subject") if isinstance(profile, dict) else None
    if subject != resource:
        raise InvalidSubjectError(domain, resource, subject)
    if _self_link(profile) is None:
        raise MissingSelfLinkError(domain)
    return profile


def resolve_actor_url(profile: dict, domain: str | None = None) -> str:
    """href of the activity+json self link, or NoActorUrlError."""
    link = _self_link(profile) if isinstance(profile, dict) else None
    href = link.get("href") if link else None
    if not isinstance(href, str) or not href:
        raise NoActorUrlError(domain)
    return href


def build_local_webfinger(
    domain: str, service_name: str, scheme: str = "https",
) -> dict:
    """JRD served for our own resource."""
    root = base_url(domain, scheme)
    actor = actor_url_for(domain, scheme)
    return {
        "subject": build_resource(service_name, domain),
        "aliases": [actor, f"{root}/"],
        "links": [
            {"rel": SELF_REL, "type": ACTIVITY_CONTENT_TYPE, "href": actor},
            {"rel": PROFILE_PAGE_REL, "type": "text/html", "href": f"{root}/"},
        ],
    }
