"""
FHIR Bundle Assembler

Creates the document-type FHIR Bundle that carries a JP-CLINS document:
assigns ids, puts the Composition first and stamps Bundle metadata.
"""
from typing import Callable, List, Optional
import itertools
import uuid

from .constants import BundleProfiles, DocumentType, IdentifierSystems
from .resources import Bundle, BundleEntry, Composition, FhirResource, Identifier, Meta


BUNDLE_PROFILES = {
    DocumentType.EREFERRAL: BundleProfiles.EREFERRAL,
    DocumentType.EDISCHARGE_SUMMARY: BundleProfiles.EDISCHARGE_SUMMARY,
    DocumentType.ECHECKUP: BundleProfiles.ECHECKUP,
}


def generate_id() -> str:
    """Generate a unique id suffix."""
    return uuid.uuid4().hex


class SequentialIdGenerator:
    """
    Deterministic id suffixes (``000001``, ``000002``, ...) for reproducible bundles.

    Usage:
        assembler = BundleAssembler(id_generator=SequentialIdGenerator())
    """

    def __init__(self, start: int = 1, width: int = 6):
        self._counter = itertools.count(start)
        self._width = width

    def __call__(self) -> str:
        return str(next(self._counter)).zfill(self._width)


class BundleAssembler:
    """
    Assembles FHIR resources into a document Bundle.

    One assembler serves one transformation; its id generator is the single
    source of id suffixes for the Bundle and for every resource lacking an id.
    """

    def __init__(self, id_generator: Optional[Callable[[], str]] = None, base_url: Optional[str] = None):
        """
        Initialize the assembler.

        Args:
            id_generator: Callable returning a fresh id suffix (uuid4 hex if omitted)
            base_url: Base for entry fullUrls (settings.fhir_base_url if omitted)
        """
        if base_url is None:
            from ..config import settings
            base_url = settings.fhir_base_url
        self.id_generator = id_generator or generate_id
        self.base_url = base_url.rstrip("/")

    def allocate_id(self, resource_type: str) -> str:
        """
        Allocate an id for a resource that must be referenced before assembly.

        Args:
            resource_type: FHIR resource type, e.g. "Condition"

        Returns:
            Id of the form ``<resourcetype>-<suffix>``
        """
        return f"{resource_type.lower()}-{self.id_generator()}"

    def assemble(
        self,
        resources: List[FhirResource],
        composition_index: int,
        document_type: DocumentType,
        timestamp: str
    ) -> Bundle:
        """
        Build the final document Bundle.

        The Composition becomes entry 0 and the other resources follow in the
        order they were produced. References are neither resolved nor repaired.

        Args:
            resources: All resources of the document
            composition_index: Position of the Composition in ``resources``
            document_type: Document type, selects the Bundle profile and id
            timestamp: Document creation time (ISO-8601 with offset)

        Returns:
            FHIR Bundle of type "document"

        Raises:
            ValueError: If the index does not point at a Composition or a
                second Composition is present
        """
        if not 0 <= composition_index < len(resources):
            raise ValueError(f"Composition index {composition_index} is out of range")
        composition = resources[composition_index]
        if not isinstance(composition, Composition):
            raise ValueError(
                f"Resource at index {composition_index} is {composition.resource_type}, not Composition"
            )

        others = [r for i, r in enumerate(resources) if i != composition_index]
        if any(isinstance(r, Composition) for r in others):
            raise ValueError("A document Bundle must contain exactly one Composition")

        entries = []
        for resource in [composition] + others:
            if not resource.id:
                resource.id = self.allocate_id(resource.resource_type)
            entries.append(BundleEntry(
                fullUrl=f"{self.base_url}/{resource.resource_type}/{resource.id}",
                resource=resource
            ))

        bundle_id = f"jp-{document_type.value.lower()}-bundle-{self.id_generator()}"
        profile = BUNDLE_PROFILES.get(document_type)

        return Bundle(
            id=bundle_id,
            meta=Meta(profile=[profile]) if profile else None,
            identifier=Identifier(system=IdentifierSystems.BUNDLE, value=bundle_id),
            type="document",
            timestamp=timestamp,
            entry=entries
        )
