"""ImageSet overrides: pin rendered container images to digests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from manager_operator.integrations.kubernetes.models.base import ObjectRef
from manager_operator.integrations.kubernetes.models.operator import (
    OPERATOR_API_VERSION,
    ImageSetResource,
)
from manager_operator.services.manager.constants import IMAGESET_KIND
from manager_operator.services.manager.dependencies import read_optional
from manager_operator.services.manager.errors import ImageOverrideError
from manager_operator.services.manager.render import DEFAULT_REGISTRY

if TYPE_CHECKING:
    import structlog

    from manager_operator.integrations.kubernetes.models.operator import InstallationResource
    from manager_operator.services.kubernetes.object_store import ObjectStore
    from manager_operator.services.manager.components import RenderedComponent

IMAGESET_ERROR_REASON = "Error with images from ImageSet"
DIGEST_PREFIX = "sha256:"
VARIANT_PREFIXES = {
    "Calico": "calico",
    "TigeraSecureEnterprise": "enterprise",
}
POD_TEMPLATE_KINDS = ("Deployment", "DaemonSet", "StatefulSet", "Job")


def image_set_name(variant: str, release_version: str) -> str:
    """Name of the ImageSet for a product variant and release, e.g. ``enterprise-v3.11.0``."""
    prefix = VARIANT_PREFIXES.get(variant, variant.lower())
    return f"{prefix}-{release_version}"


def image_name(reference: str) -> str:
    """Strip the digest and tag from an image reference."""
    name = reference.split("@", 1)[0]
    last_slash = name.rfind("/")
    colon = name.rfind(":")
    if colon > last_slash:
        name = name[:colon]
    return name


def validate_image_set(image_set: ImageSetResource) -> dict[str, str]:
    """Map each image to its digest.

    Raises:
        ImageOverrideError: If a digest is not a sha256 digest.
    """
    digests: dict[str, str] = {}
    for entry in image_set.images:
        if not entry.digest.startswith(DIGEST_PREFIX):
            raise ImageOverrideError(
                IMAGESET_ERROR_REASON,
                f"ImageSet {image_set.name} has digest {entry.digest!r} for image "
                f"{entry.image!r}; digests must start with {DIGEST_PREFIX!r}",
            )
        digests[entry.image] = entry.digest
    return digests


def _match(reference: str, digests: dict[str, str]) -> str | None:
    name = image_name(reference)
    for image in digests:
        if name == image or name.endswith(f"/{image}"):
            return image
    return None


def _pod_containers(obj: dict[str, Any]) -> list[dict[str, Any]]:
    if obj.get("kind") not in POD_TEMPLATE_KINDS:
        return []
    pod_spec = ((obj.get("spec") or {}).get("template") or {}).get("spec") or {}
    return [*(pod_spec.get("initContainers") or []), *(pod_spec.get("containers") or [])]


def apply_image_set(
    store: ObjectStore,
    installation: InstallationResource,
    release_version: str,
    component: RenderedComponent,
    *,
    log: structlog.BoundLogger,
) -> RenderedComponent:
    """Rewrite container images of ``component`` pinned by the release's ImageSet.

    Every container whose image matches an ImageSet entry becomes
    ``<registry><image>@<digest>``. Without an ImageSet the component is
    returned unchanged.

    Raises:
        ImageOverrideError: If the ImageSet is malformed or has an invalid digest.
        KubernetesError: If the ImageSet cannot be read.
    """
    name = image_set_name(installation.variant, release_version)
    obj = read_optional(store, ObjectRef(OPERATOR_API_VERSION, IMAGESET_KIND, name))
    if obj is None:
        return component

    try:
        image_set = ImageSetResource.from_k8s_object(obj)
    except ValueError as e:
        raise ImageOverrideError(
            IMAGESET_ERROR_REASON, f"ImageSet {name} is malformed: {e}"
        ) from e
    digests = validate_image_set(image_set)
    registry = installation.registry or DEFAULT_REGISTRY
    if not registry.endswith("/"):
        registry += "/"

    objects, _ = component.objects()
    pinned = 0
    for rendered in objects:
        for container in _pod_containers(rendered):
            image = _match(container.get("image", ""), digests)
            if image is not None:
                container["image"] = f"{registry}{image}@{digests[image]}"
                pinned += 1
    log.info("image_set_applied", image_set=name, pinned=pinned)
    return component.with_objects(objects)
