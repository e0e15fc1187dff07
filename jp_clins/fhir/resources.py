"""
FHIR Resource Model

Typed pydantic models for the subset of FHIR resources that JP-CLINS
document Bundles are built from.

fhir.resources is not used here because the eReferral profile still carries
the STU3 ReferralRequest resource, which no R4 model set defines. Field names
are the FHIR JSON element names and fields are declared in FHIR element order,
so a model dump can be rendered straight to FHIR JSON or FHIR XML.
"""
from typing import Any, ClassVar, Dict, List, Optional
from datetime import datetime

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    SerializerFunctionWrapHandler,
    model_serializer,
)


def fhir_datetime(value: datetime) -> str:
    """Render a datetime as a FHIR dateTime/instant string (ISO-8601 with offset)."""
    return value.isoformat()


class FhirModel(BaseModel):
    """Base for all FHIR elements."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# ============================================================================
# Data types
# ============================================================================

class Coding(FhirModel):
    system: Optional[str] = None
    version: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None


class CodeableConcept(FhirModel):
    coding: Optional[List[Coding]] = None
    text: Optional[str] = None


class Identifier(FhirModel):
    use: Optional[str] = None
    system: Optional[str] = None
    value: Optional[str] = None


class Reference(FhirModel):
    reference: Optional[str] = None
    type: Optional[str] = None
    identifier: Optional[Identifier] = None
    display: Optional[str] = None


class Meta(FhirModel):
    versionId: Optional[str] = None
    lastUpdated: Optional[str] = None
    profile: Optional[List[str]] = None


class Narrative(FhirModel):
    status: str = "generated"
    div: str


class Quantity(FhirModel):
    value: Optional[float] = None
    unit: Optional[str] = None
    system: Optional[str] = None
    code: Optional[str] = None


class HumanName(FhirModel):
    use: Optional[str] = None
    text: Optional[str] = None


class ContactPoint(FhirModel):
    system: Optional[str] = None
    value: Optional[str] = None
    use: Optional[str] = None


class Address(FhirModel):
    use: Optional[str] = None
    text: Optional[str] = None
    postalCode: Optional[str] = None
    country: Optional[str] = None


class Annotation(FhirModel):
    text: str


class Attachment(FhirModel):
    contentType: Optional[str] = None
    language: Optional[str] = None
    data: Optional[str] = None
    title: Optional[str] = None


class Dosage(FhirModel):
    text: Optional[str] = None


# ============================================================================
# Resources
# ============================================================================

class FhirResource(FhirModel):
    """
    Base for all FHIR resources.

    ``resource_type`` is fixed per subclass and written out as
    ``resourceType`` ahead of every other element.
    """
    resource_type: ClassVar[str] = "Resource"

    id: Optional[str] = None
    meta: Optional[Meta] = None

    @model_serializer(mode="wrap")
    def serialize_with_type(self, handler: SerializerFunctionWrapHandler) -> Dict[str, Any]:
        data = handler(self)
        return {"resourceType": self.resource_type, **data}

    @property
    def reference(self) -> str:
        """Literal reference (``Type/id``) to this resource."""
        if not self.id:
            raise ValueError(f"{self.resource_type} has no id yet")
        return f"{self.resource_type}/{self.id}"


class DomainResource(FhirResource):
    text: Optional[Narrative] = None


class Patient(DomainResource):
    resource_type: ClassVar[str] = "Patient"

    identifier: Optional[List[Identifier]] = None
    name: Optional[List[HumanName]] = None


class Practitioner(DomainResource):
    resource_type: ClassVar[str] = "Practitioner"

    identifier: Optional[List[Identifier]] = None
    name: Optional[List[HumanName]] = None


class Organization(DomainResource):
    resource_type: ClassVar[str] = "Organization"

    identifier: Optional[List[Identifier]] = None
    name: Optional[str] = None
    telecom: Optional[List[ContactPoint]] = None
    address: Optional[List[Address]] = None


class Encounter(DomainResource):
    resource_type: ClassVar[str] = "Encounter"

    identifier: Optional[List[Identifier]] = None
    status: str = "unknown"
    class_: Optional[Coding] = Field(None, alias="class")
    subject: Optional[Reference] = None


class CompositionSection(FhirModel):
    title: Optional[str] = None
    code: Optional[CodeableConcept] = None
    text: Optional[Narrative] = None
    entry: Optional[List[Reference]] = None


class Composition(DomainResource):
    resource_type: ClassVar[str] = "Composition"

    identifier: Optional[Identifier] = None
    status: str
    type: CodeableConcept
    subject: Optional[Reference] = None
    encounter: Optional[Reference] = None
    date: str
    author: List[Reference]
    title: str
    custodian: Optional[Reference] = None
    section: Optional[List[CompositionSection]] = None


class Condition(DomainResource):
    resource_type: ClassVar[str] = "Condition"

    clinicalStatus: Optional[CodeableConcept] = None
    verificationStatus: Optional[CodeableConcept] = None
    category: Optional[List[CodeableConcept]] = None
    code: Optional[CodeableConcept] = None
    subject: Reference
    encounter: Optional[Reference] = None
    recordedDate: Optional[str] = None
    note: Optional[List[Annotation]] = None


class AllergyIntolerance(DomainResource):
    resource_type: ClassVar[str] = "AllergyIntolerance"

    clinicalStatus: Optional[CodeableConcept] = None
    verificationStatus: Optional[CodeableConcept] = None
    code: Optional[CodeableConcept] = None
    patient: Reference
    encounter: Optional[Reference] = None
    recordedDate: Optional[str] = None
    note: Optional[List[Annotation]] = None


class Observation(DomainResource):
    resource_type: ClassVar[str] = "Observation"

    status: str = "final"
    category: Optional[List[CodeableConcept]] = None
    code: CodeableConcept
    subject: Reference
    encounter: Optional[Reference] = None
    effectiveDateTime: Optional[str] = None
    valueQuantity: Optional[Quantity] = None
    valueString: Optional[str] = None
    note: Optional[List[Annotation]] = None


class MedicationRequest(DomainResource):
    resource_type: ClassVar[str] = "MedicationRequest"

    status: str = "active"
    intent: str = "order"
    medicationCodeableConcept: CodeableConcept
    subject: Reference
    encounter: Optional[Reference] = None
    authoredOn: Optional[str] = None
    requester: Optional[Reference] = None
    note: Optional[List[Annotation]] = None
    dosageInstruction: Optional[List[Dosage]] = None


class ServiceRequest(DomainResource):
    resource_type: ClassVar[str] = "ServiceRequest"

    status: str = "active"
    intent: str = "order"
    code: Optional[CodeableConcept] = None
    subject: Reference
    encounter: Optional[Reference] = None
    authoredOn: Optional[str] = None
    requester: Optional[Reference] = None
    note: Optional[List[Annotation]] = None


class ReferralRequestRequester(FhirModel):
    agent: Reference
    onBehalfOf: Optional[Reference] = None


class ReferralRequest(DomainResource):
    """STU3 ReferralRequest, kept because the eReferral document still carries it."""
    resource_type: ClassVar[str] = "ReferralRequest"

    status: str = "active"
    intent: str = "order"
    type: Optional[CodeableConcept] = None
    subject: Reference
    context: Optional[Reference] = None
    authoredOn: Optional[str] = None
    requester: Optional[ReferralRequestRequester] = None
    recipient: Optional[List[Reference]] = None
    reasonCode: Optional[List[CodeableConcept]] = None
    description: Optional[str] = None
    note: Optional[List[Annotation]] = None


class DocumentReferenceContent(FhirModel):
    attachment: Attachment


class DocumentReference(DomainResource):
    resource_type: ClassVar[str] = "DocumentReference"

    status: str = "current"
    type: Optional[CodeableConcept] = None
    subject: Optional[Reference] = None
    date: Optional[str] = None
    author: Optional[List[Reference]] = None
    custodian: Optional[Reference] = None
    description: Optional[str] = None
    content: List[DocumentReferenceContent]


class BundleEntry(FhirModel):
    fullUrl: Optional[str] = None
    resource: SerializeAsAny[FhirResource]


class Bundle(FhirResource):
    resource_type: ClassVar[str] = "Bundle"

    identifier: Optional[Identifier] = None
    type: str = "document"
    timestamp: str
    entry: List[BundleEntry] = Field(default_factory=list)

    @property
    def resources(self) -> List[FhirResource]:
        """Resources of all entries, in entry order."""
        return [entry.resource for entry in self.entry]

    def to_dict(self) -> Dict[str, Any]:
        """
        Dump the Bundle as FHIR JSON-shaped data.

        Absent elements are left out and empty strings, lists or objects are pruned.
        """
        return prune_empty(self.model_dump(by_alias=True, exclude_none=True))


def prune_empty(value: Any) -> Any:
    """Recursively drop None values and empty strings, lists and dicts."""
    if isinstance(value, dict):
        pruned = {key: prune_empty(item) for key, item in value.items()}
        return {key: item for key, item in pruned.items() if item not in (None, "", [], {})}
    if isinstance(value, list):
        pruned = [prune_empty(item) for item in value]
        return [item for item in pruned if item not in (None, "", [], {})]
    return value
