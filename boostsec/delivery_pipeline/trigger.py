"""Build triggers from webhook payloads."""

import hashlib
import hmac
from collections.abc import Mapping

from boostsec.delivery_pipeline.errors import ConfigurationError
from boostsec.delivery_pipeline.models.trigger import Trigger


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check an HMAC-SHA256 webhook signature ("sha256=<hex>" or bare hex)."""
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    provided = signature.removeprefix("sha256=")
    return hmac.compare_digest(expected.encode(), provided.encode())


def _branch(ref: object) -> str | None:
    if not isinstance(ref, str) or not ref:
        return None
    for prefix in ("refs/heads/", "refs/tags/"):
        if ref.startswith(prefix):
            return ref[len(prefix) :]
    return ref


def parse_webhook_payload(
    payload: Mapping[str, object],
    image_name: str | None = None,
    credential_id: str | None = None,
) -> Trigger:
    """Build a trigger from a GitHub or GitLab push event payload.

    Raises:
        ConfigurationError: If the payload carries no ref

    """
    ref = _branch(payload.get("ref"))
    if ref is None:
        raise ConfigurationError("Webhook payload has no ref")

    commit = payload.get("after") or payload.get("checkout_sha")
    if not isinstance(commit, str) or set(commit) == {"0"}:
        commit = None

    source = None
    repository = payload.get("repository")
    project = payload.get("project")
    if isinstance(repository, dict) and isinstance(repository.get("clone_url"), str):
        source = repository["clone_url"]
    elif isinstance(project, dict) and isinstance(project.get("git_http_url"), str):
        source = project["git_http_url"]

    return Trigger(
        origin="webhook",
        source=source,
        ref=ref,
        commit=commit,
        image_name=image_name,
        credential_id=credential_id,
    )
