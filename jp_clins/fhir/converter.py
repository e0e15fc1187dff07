"""
FHIR Document Converter

Turns a JP-CLINS input document into a FHIR document Bundle.

One DocumentTransformer implements the conversion; a DocumentProfile per
document type supplies what differs between eReferral, eDischargeSummary and
eCheckup. The transformer:
1. Validates references, status, creation time, sections and coded values
2. Builds reference-only stubs (Patient, Practitioner, Organization, Encounter)
3. Builds supporting resources for recognized clinical-data sections
4. Builds the Composition mirroring the input sections
5. Hands everything to the BundleAssembler

Domain problems are returned as a ValidationFailure inside ConversionResult,
never raised.
"""
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass, field
from collections import Counter
import logging

from pydantic import ValidationError

from ..schemas import ClinicalDocument, CodeableConceptInput, ReferenceInput, SectionInput
from .bundler import BundleAssembler
from .constants import (
    CodeSystems,
    DocumentStatus,
    DocumentType,
    LoincCodes,
    ResourceProfiles,
)
from .errors import ValidationFailure
from .mappers import (
    ClinicalItem,
    CompositionMapper,
    DocumentContext,
    EncounterMapper,
    OrganizationMapper,
    PatientMapper,
    PractitionerMapper,
    SUPPORTING_RESOURCE_TYPES,
    SupportingKind,
    map_supporting,
    reference_type,
    to_reference,
)
from .resources import Bundle, Composition, FhirResource, Reference, fhir_datetime
from .validators import (
    check_coding,
    check_identifier,
    validate_phone_number,
    validate_postal_code,
    validate_reference,
    validate_xml_text,
)

logger = logging.getLogger(__name__)


@dataclass
class ConversionResult:
    """Result of FHIR conversion."""
    success: bool
    document_type: DocumentType
    bundle: Optional[Bundle] = None
    resource_counts: Optional[Dict[str, int]] = None
    failure: Optional[ValidationFailure] = None

    @property
    def errors(self) -> List[str]:
        """Validation messages, empty on success."""
        return self.failure.messages if self.failure else []


@dataclass(frozen=True)
class DocumentProfile:
    """
    What distinguishes one JP-CLINS document type from another.

    Attributes:
        document_type: Document type handled
        type_coding: LOINC coding placed in Composition.type
        composition_profile: JP-CLINS Composition profile URL
        title: Fixed Composition title
        encounter_class: v3 ActCode class of the Encounter stub
        section_resources: Section LOINC code -> supporting resource kind
    """
    document_type: DocumentType
    type_coding: Dict[str, str]
    composition_profile: str
    title: str
    encounter_class: str
    section_resources: Mapping[str, SupportingKind] = field(default_factory=dict)


COMMON_SECTION_RESOURCES = {
    LoincCodes.ALLERGIES: SupportingKind.ALLERGY,
    LoincCodes.MEDICATIONS: SupportingKind.MEDICATION,
    LoincCodes.PROBLEM_LIST: SupportingKind.PROBLEM,
    LoincCodes.LAB_RESULTS: SupportingKind.LAB_RESULT,
    LoincCodes.ADDITIONAL_DOCUMENTATION: SupportingKind.DOCUMENT_REFERENCE,
}

EREFERRAL_PROFILE = DocumentProfile(
    document_type=DocumentType.EREFERRAL,
    type_coding={"system": CodeSystems.LOINC, "code": LoincCodes.REFERRAL_NOTE, "display": "Referral note"},
    composition_profile=ResourceProfiles.COMPOSITION_EREFERRAL,
    title="電子紹介状 (eReferral)",
    encounter_class="AMB",
    section_resources={
        **COMMON_SECTION_RESOURCES,
        LoincCodes.REFERRAL_REASON: SupportingKind.REFERRAL_REQUEST,
        LoincCodes.REQUESTED_SERVICES: SupportingKind.SERVICE_REQUEST,
    },
)

EDISCHARGE_SUMMARY_PROFILE = DocumentProfile(
    document_type=DocumentType.EDISCHARGE_SUMMARY,
    type_coding={"system": CodeSystems.LOINC, "code": LoincCodes.DISCHARGE_SUMMARY, "display": "Discharge summary"},
    composition_profile=ResourceProfiles.COMPOSITION_EDISCHARGE_SUMMARY,
    title="退院時サマリー (eDischargeSummary)",
    encounter_class="IMP",
    section_resources={
        **COMMON_SECTION_RESOURCES,
        LoincCodes.DISCHARGE_DIAGNOSIS: SupportingKind.DIAGNOSIS,
        LoincCodes.DISCHARGE_MEDICATIONS: SupportingKind.MEDICATION,
    },
)

ECHECKUP_PROFILE = DocumentProfile(
    document_type=DocumentType.ECHECKUP,
    type_coding={"system": CodeSystems.LOINC, "code": LoincCodes.CHECKUP_REPORT, "display": "Laboratory report"},
    composition_profile=ResourceProfiles.COMPOSITION_ECHECKUP,
    title="健診結果 (Health Checkup Results)",
    encounter_class="AMB",
    section_resources={
        **COMMON_SECTION_RESOURCES,
        LoincCodes.VITAL_SIGNS: SupportingKind.VITAL_SIGN,
        LoincCodes.MICROBIOLOGY: SupportingKind.LAB_RESULT,
        LoincCodes.PHYSICAL_FINDINGS: SupportingKind.EXAM,
        LoincCodes.IMAGING: SupportingKind.IMAGING,
    },
)

DOCUMENT_PROFILES = {
    profile.document_type: profile
    for profile in (EREFERRAL_PROFILE, EDISCHARGE_SUMMARY_PROFILE, ECHECKUP_PROFILE)
}


def section_code(section: SectionInput) -> Optional[str]:
    """LOINC code of a section (first coded value when none is LOINC)."""
    if section.code is None:
        return None
    codes = [coding for coding in section.code.coding if coding.code]
    for coding in codes:
        if coding.system == CodeSystems.LOINC:
            return coding.code
    return codes[0].code if codes else None


class DocumentTransformer:
    """
    Converts one kind of JP-CLINS document to a FHIR document Bundle.

    Usage:
        transformer = DocumentTransformer(EREFERRAL_PROFILE)
        result = transformer.transform(document)

        if result.success:
            bundle = result.bundle
    """

    def __init__(
        self,
        profile: DocumentProfile,
        id_generator: Optional[Callable[[], str]] = None,
        base_url: Optional[str] = None,
        require_encounter: Optional[bool] = None
    ):
        """
        Initialize the transformer.

        Args:
            profile: Document profile to apply
            id_generator: Id suffix generator handed to each BundleAssembler
            base_url: fullUrl base handed to each BundleAssembler
            require_encounter: Reject documents without an encounter
                (settings.require_encounter if omitted)
        """
        if require_encounter is None:
            from ..config import settings
            require_encounter = settings.require_encounter
        self.profile = profile
        self.id_generator = id_generator
        self.base_url = base_url
        self.require_encounter = require_encounter

    @property
    def document_type(self) -> DocumentType:
        return self.profile.document_type

    def transform(self, document: ClinicalDocument) -> ConversionResult:
        """
        Convert a document to a FHIR Bundle.

        Args:
            document: Parsed input document

        Returns:
            ConversionResult with the Bundle, or with a ValidationFailure
            listing every problem found
        """
        messages = self.validate(document)
        if messages:
            logger.warning(
                "%s rejected with %d validation error(s): %s",
                self.document_type.value, len(messages), "; ".join(messages)
            )
            return ConversionResult(
                success=False,
                document_type=self.document_type,
                failure=ValidationFailure(messages)
            )

        bundle = self._build(document)
        resource_counts = dict(Counter(r.resource_type for r in bundle.resources))
        logger.info(
            "%s converted to bundle %s with %d resources",
            self.document_type.value, bundle.id, len(bundle.entry)
        )
        return ConversionResult(
            success=True,
            document_type=self.document_type,
            bundle=bundle,
            resource_counts=resource_counts
        )

    # ------------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------------

    def validate(self, document: ClinicalDocument) -> List[str]:
        """
        Collect every validation problem in a document.

        Args:
            document: Parsed input document

        Returns:
            Field-level messages; empty when the document can be converted
        """
        messages: List[str] = []

        self._check_reference(messages, "patientReference", document.patient_reference, "Patient", True)
        self._check_reference(messages, "authorReference", document.author_reference, "Practitioner", True)
        self._check_reference(messages, "custodianReference", document.custodian_reference, "Organization", True)
        self._check_reference(messages, "encounter", document.encounter, "Encounter", self.require_encounter)

        allowed_statuses = [status.value for status in DocumentStatus]
        if not document.document_status:
            messages.append("documentStatus is required")
        elif document.document_status not in allowed_statuses:
            messages.append(
                f"documentStatus '{document.document_status}' must be one of: {', '.join(allowed_statuses)}"
            )

        if document.created_at is None:
            messages.append("createdAt is required")
        elif document.created_at.tzinfo is None or document.created_at.utcoffset() is None:
            messages.append("createdAt must include a UTC offset")

        if not document.sections:
            messages.append("sections must contain at least one section")
        for index, section in enumerate(document.sections):
            self._check_section(messages, f"sections[{index}]", section)

        contact = document.custodian_contact
        if contact and contact.postal_code is not None:
            check = validate_postal_code(contact.postal_code)
            if not check:
                messages.append(f"custodianContact.postalCode: {check.reason}")
        if contact and contact.phone is not None:
            check = validate_phone_number(contact.phone)
            if not check:
                messages.append(f"custodianContact.phone: {check.reason}")

        return messages

    @staticmethod
    def _check_reference(
        messages: List[str],
        name: str,
        reference: Optional[ReferenceInput],
        expected_type: str,
        required: bool
    ) -> None:
        if reference is None or not (reference.reference or "").strip():
            if required:
                messages.append(f"{name} is required")
            return

        check = validate_reference(reference.reference)
        if not check:
            messages.append(f"{name}: {check.reason}")
            return

        actual_type = reference_type(reference.reference)
        if actual_type is not None and actual_type != expected_type:
            messages.append(f"{name} must reference a {expected_type}, got '{reference.reference}'")

        if reference.identifier is not None:
            check = check_identifier(reference.identifier.system, reference.identifier.value)
            if not check:
                messages.append(f"{name}.identifier: {check.reason}")

        check = validate_xml_text(reference.display)
        if not check:
            messages.append(f"{name}.display: {check.reason}")

    @staticmethod
    def _check_text(messages: List[str], name: str, text: Optional[str]) -> None:
        check = validate_xml_text(text)
        if not check:
            messages.append(f"{name}: {check.reason}")

    def _check_concept(self, messages: List[str], name: str, concept: Optional[CodeableConceptInput]) -> None:
        if concept is None:
            return
        self._check_text(messages, f"{name}.text", concept.text)
        for index, coding in enumerate(concept.coding):
            check = check_coding(coding.system, coding.code)
            if not check:
                messages.append(f"{name}.coding[{index}]: {check.reason}")
            self._check_text(messages, f"{name}.coding[{index}].display", coding.display)

    def _check_section(self, messages: List[str], name: str, section: SectionInput) -> None:
        if section.code is None or not any(coding.code for coding in section.code.coding):
            messages.append(f"{name}.code must contain at least one coding")
        else:
            self._check_concept(messages, f"{name}.code", section.code)
        self._check_text(messages, f"{name}.title", section.title)
        self._check_text(messages, f"{name}.text", section.text)

        for index, entry in enumerate(section.entries):
            entry_name = f"{name}.entries[{index}]"
            self._check_concept(messages, f"{entry_name}.code", entry.code)
            self._check_text(messages, f"{entry_name}.text", entry.text)
            self._check_text(messages, f"{entry_name}.unit", entry.unit)
            if isinstance(entry.value, str):
                self._check_text(messages, f"{entry_name}.value", entry.value)

    # ------------------------------------------------------------------------
    # Resource graph
    # ------------------------------------------------------------------------

    def _build(self, document: ClinicalDocument) -> Bundle:
        assembler = BundleAssembler(id_generator=self.id_generator, base_url=self.base_url)
        created_at = fhir_datetime(document.created_at)

        patient = PatientMapper.map(document.patient_reference)
        practitioner = PractitionerMapper.map(document.author_reference)
        organization = OrganizationMapper.map(document.custodian_reference, document.custodian_contact)
        resources: List[FhirResource] = [patient, practitioner, organization]

        context = DocumentContext(
            patient=to_reference(document.patient_reference),
            author=to_reference(document.author_reference),
            custodian=to_reference(document.custodian_reference),
            created_at=created_at,
        )

        if document.encounter is not None and document.encounter.reference:
            context.encounter = to_reference(document.encounter)
            resources.append(
                EncounterMapper.map(document.encounter, self.profile.encounter_class, context.patient)
            )

        section_entries: List[List[Reference]] = []
        for section in document.sections:
            section_entries.append(self._map_section(section, context, assembler, resources))

        composition = CompositionMapper.map(
            document,
            context,
            type_coding=self.profile.type_coding,
            title=self.profile.title,
            profile=self.profile.composition_profile,
            section_entries=section_entries,
            resource_id=assembler.allocate_id(Composition.resource_type)
        )
        resources.append(composition)

        return assembler.assemble(
            resources,
            composition_index=len(resources) - 1,
            document_type=self.document_type,
            timestamp=created_at
        )

    def _map_section(
        self,
        section: SectionInput,
        context: DocumentContext,
        assembler: BundleAssembler,
        resources: List[FhirResource]
    ) -> List[Reference]:
        """Build the supporting resources of one section and return references to them."""
        kind = self.profile.section_resources.get(section_code(section))
        if kind is None:
            if section.entries:
                logger.debug(
                    "Section %r is narrative-only; ignoring %d entries", section.title, len(section.entries)
                )
            return []

        items = [ClinicalItem.from_entry(entry, section) for entry in section.entries]
        if not items:
            items = [ClinicalItem.from_section(section)]

        references = []
        for item in items:
            resource_id = assembler.allocate_id(SUPPORTING_RESOURCE_TYPES[kind])
            resource = map_supporting(kind, item, context, resource_id)
            resources.append(resource)
            references.append(Reference(reference=resource.reference))
        return references


def get_transformer(document_type: Union[DocumentType, str], **kwargs: Any) -> DocumentTransformer:
    """
    Select the transformer for a document type.

    Raises:
        ValueError: If the document type has no registered profile
    """
    try:
        profile = DOCUMENT_PROFILES[DocumentType(document_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported document type: {document_type!r}") from None
    return DocumentTransformer(profile, **kwargs)


def transform_document(
    document: Union[ClinicalDocument, Dict[str, Any]],
    document_type: Union[DocumentType, str],
    **kwargs: Any
) -> ConversionResult:
    """
    Convert a document of the given type to a FHIR document Bundle.

    Args:
        document: Parsed document, or raw JSON-shaped data to parse first
        document_type: eReferral, eDischargeSummary or eCheckup
        **kwargs: id_generator, base_url, require_encounter (see DocumentTransformer)

    Returns:
        ConversionResult; structurally malformed raw data yields a
        ValidationFailure rather than an exception
    """
    transformer = get_transformer(document_type, **kwargs)

    if not isinstance(document, ClinicalDocument):
        try:
            document = ClinicalDocument.model_validate(document)
        except ValidationError as e:
            messages = [
                f"{'.'.join(str(part) for part in err['loc']) or 'document'}: {err['msg']}"
                for err in e.errors()
            ]
            logger.warning("%s input is malformed: %s", transformer.document_type.value, "; ".join(messages))
            return ConversionResult(
                success=False,
                document_type=transformer.document_type,
                failure=ValidationFailure(messages)
            )

    return transformer.transform(document)
