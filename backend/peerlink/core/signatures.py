"""HTTP Signature Wire Format — canonical signing string and Signature header codec.

Invariants:
    - Signing string: newline-joined "lowercased-name: value" pairs in caller order
    - "(request-target)" expands to "<lowercased-method> <path>"
    - Header field order is fixed: keyId, algorithm, headers, signature — bit-exact for interop
    - Parsing splits on ",", trims, splits each part on the FIRST "=" and strips quotes

Design Decisions:
    - Pure string functions, no crypto here (ADR: crypto lives in infrastructure/crypto.py)
    - Header lookup is case-insensitive; a missing header signs as an empty value so the
      verification fails on the signature, not on a KeyError
"""

from collections.abc import Iterable, Mapping

from peerlink.core.domain_types import DEFAULT_SIGNED_HEADERS, SIGNATURE_ALGORITHM
from peerlink.core.errors import InvalidSignatureHeaderError

REQUEST_TARGET = "(request-target)"


def build_signing_string(
    method: str,
    path: str,
    headers: Mapping[str, str],
    header_names: Iterable[str] = DEFAULT_SIGNED_HEADERS,
) -> str:
    """Canonical string signed by the sender and rebuilt by the receiver."""
    lowered = {k.lower(): v for k, v in headers.items()}
    lines = []
    for name in header_names:
        name = name.lower()
        if name == REQUEST_TARGET:
            lines.append(f"{REQUEST_TARGET}: {method.lower()} {path}")
        else:
            lines.append(f"{name}: {lowered.get(name, '')}")
    return "\n".join(lines)


def format_signature_header(
    key_id: str,
    signature: str,
    header_names: Iterable[str] = DEFAULT_SIGNED_HEADERS,
    algorithm: str = SIGNATURE_ALGORITHM,
) -> str:
    """keyId="…",algorithm="…",headers="…",signature="…" """
    return ",".join([
        f'keyId="{key_id}"',
        f'algorithm="{algorithm}"',
        f'headers="{" ".join(header_names)}"',
        f'signature="{signature}"',
    ])


def parse_signature_header(value: str | None) -> dict[str, str]:
    """Parse a Signature header into its fields.

    Raises InvalidSignatureHeaderError when absent, when a part has no "=",
    or when keyId / signature are missing.
    """
    if not value or not value.strip():
        raise InvalidSignatureHeaderError("missing")
    fields: dict[str, str] = {}
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise InvalidSignatureHeaderError(f"malformed field {part!r}")
        key, raw = part.split("=", 1)
        fields[key.strip()] = raw.strip().strip('"')
    for required in ("keyId", "signature"):
        if not fields.get(required):
            raise InvalidSignatureHeaderError(f"{required} missing")
    return fields


def signed_header_names(fields: Mapping[str, str]) -> list[str]:
    """Space-separated `headers` field; RFC default is just `date`."""
    raw = fields.get("headers", "").strip()
    return raw.split() if raw else ["date"]
