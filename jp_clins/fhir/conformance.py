"""
Bundle Conformance Checks

Report-only checks on an assembled Bundle:
- check_document_bundle: JP-CLINS document Bundle rules
- check_r4_structure: structural re-parse with the fhir.resources R4B models

Neither function changes the Bundle.
"""
from typing import List, Set
import logging

from pydantic import ValidationError

from .constants import BASE_PROFILE_URL
from .resources import Bundle, Composition

logger = logging.getLogger(__name__)

REQUIRED_RESOURCE_TYPES = ("Patient", "Practitioner", "Organization")

# Resource types the documents carry that FHIR R4 does not define
NON_R4_RESOURCE_TYPES = {"ReferralRequest"}


def _declares_clins_profile(profiles) -> bool:
    return any(profile.startswith(BASE_PROFILE_URL) for profile in profiles or [])


def check_document_bundle(bundle: Bundle) -> List[str]:
    """
    Check a Bundle against the JP-CLINS document Bundle rules.

    Args:
        bundle: Assembled Bundle

    Returns:
        Rule violations; empty when the Bundle conforms
    """
    problems: List[str] = []

    if bundle.type != "document":
        problems.append("Bundle type must be 'document' for JP-CLINS documents")
    if not bundle.timestamp:
        problems.append("Bundle must carry a timestamp")
    if not _declares_clins_profile(bundle.meta.profile if bundle.meta else None):
        problems.append("Bundle must declare a JP-CLINS profile in meta.profile")

    if not bundle.entry:
        problems.append("Bundle must contain at least one entry")
        return problems

    resources = bundle.resources
    if not isinstance(resources[0], Composition):
        problems.append("First entry in document bundle must be a Composition resource")

    compositions = [r for r in resources if isinstance(r, Composition)]
    if len(compositions) != 1:
        problems.append(f"Document bundle must contain exactly one Composition, found {len(compositions)}")

    present: Set[str] = {f"{r.resource_type}/{r.id}" for r in resources if r.id}
    for resource_type in REQUIRED_RESOURCE_TYPES:
        if not any(r.resource_type == resource_type for r in resources):
            problems.append(f"Document bundle must contain a {resource_type} resource")

    for composition in compositions:
        if not _declares_clins_profile(composition.meta.profile if composition.meta else None):
            problems.append(f"Composition/{composition.id} must declare a JP-CLINS profile")
        for section in composition.section or []:
            for reference in section.entry or []:
                if reference.reference not in present:
                    problems.append(
                        f"Section '{section.title}' references {reference.reference}, "
                        "which is not in the Bundle"
                    )

    return problems


def check_r4_structure(bundle: Bundle) -> List[str]:
    """
    Re-parse a Bundle's JSON rendering with the fhir.resources R4B models.

    Entries whose resource type R4 does not define are left out of the
    re-parse and reported as not checked.

    Args:
        bundle: Assembled Bundle

    Returns:
        Structural errors plus one note per unchecked entry
    """
    from fhir.resources.R4B.bundle import Bundle as R4Bundle

    messages: List[str] = []
    data = bundle.to_dict()

    checked_entries = []
    for entry in data.get("entry", []):
        resource = entry.get("resource", {})
        if resource.get("resourceType") in NON_R4_RESOURCE_TYPES:
            messages.append(
                f"{resource['resourceType']}/{resource.get('id')}: not checked, "
                "resource type is not defined in FHIR R4"
            )
        else:
            checked_entries.append(entry)
    if checked_entries:
        data["entry"] = checked_entries
    else:
        data.pop("entry", None)

    try:
        R4Bundle(**data)
    except ValidationError as e:
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"])
            messages.append(f"{location}: {err['msg']}")
        logger.warning("Bundle %s failed R4 structural checks with %d error(s)", bundle.id, len(e.errors()))

    return messages
