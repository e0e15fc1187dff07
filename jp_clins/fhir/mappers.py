"""
FHIR Resource Mappers

Maps the parts of a JP-CLINS input document to FHIR resources.

Mappings:
- patientReference → Patient (reference-only stub)
- authorReference → Practitioner (reference-only stub)
- custodianReference → Organization (reference-only stub, optional contact)
- encounter → Encounter (reference-only stub)
- Section / section entry → Condition, AllergyIntolerance, Observation,
  MedicationRequest, ServiceRequest, ReferralRequest or DocumentReference
- Whole document → Composition
"""
from typing import Optional, List, Dict, Any, Union
from dataclasses import dataclass
from enum import Enum
from html import escape
import base64

from ..schemas import (
    ClinicalDocument,
    CodeableConceptInput,
    ContactInput,
    ReferenceInput,
    SectionEntryInput,
    SectionInput,
)
from .constants import CodeSystems, ResourceProfiles, XHTML_NAMESPACE
from .resources import (
    AllergyIntolerance,
    CodeableConcept,
    Composition,
    Condition,
    DocumentReference,
    Encounter,
    FhirResource,
    MedicationRequest,
    Narrative,
    Observation,
    Organization,
    Patient,
    Practitioner,
    Reference,
    ReferralRequest,
    ServiceRequest,
)
from .validators import normalize_postal_code


def reference_id(reference: str) -> str:
    """Extract the logical id from ``Type/id`` or ``urn:uuid:<id>``."""
    if reference.startswith("urn:uuid:"):
        return reference[len("urn:uuid:"):]
    return reference.rsplit("/", 1)[-1]


def reference_type(reference: str) -> Optional[str]:
    """Resource type named by a literal reference, None for ``urn:uuid:``."""
    if reference.startswith("urn:uuid:") or "/" not in reference:
        return None
    return reference.split("/", 1)[0]


def to_codeable_concept(concept: Optional[CodeableConceptInput]) -> Optional[Dict[str, Any]]:
    """Convert an input CodeableConcept to FHIR shape, dropping empty codings."""
    if concept is None:
        return None
    codings = [
        coding.model_dump(exclude_none=True)
        for coding in concept.coding
        if coding.system or coding.code or coding.display
    ]
    concept_dict: Dict[str, Any] = {}
    if codings:
        concept_dict["coding"] = codings
    if concept.text:
        concept_dict["text"] = concept.text
    return concept_dict or None


def to_reference(reference: ReferenceInput) -> Reference:
    """Convert an input reference to a FHIR Reference, keeping display and identifier."""
    reference_dict: Dict[str, Any] = {"reference": reference.reference}
    if reference.identifier and (reference.identifier.system or reference.identifier.value):
        reference_dict["identifier"] = reference.identifier.model_dump(exclude_none=True)
    if reference.display:
        reference_dict["display"] = reference.display
    return Reference(**reference_dict)


def to_narrative(text: Optional[str]) -> Narrative:
    """Wrap plain text in an XHTML div; an empty narrative is allowed."""
    return Narrative(
        status="generated",
        div=f'<div xmlns="{XHTML_NAMESPACE}">{escape(text or "", quote=False)}</div>',
    )


def _format_value(value: Union[float, str], unit: Optional[str] = None) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value} {unit}" if unit else str(value)


def _category(system: str, code: str, display: str) -> List[Dict[str, Any]]:
    return [{"coding": [{"system": system, "code": code, "display": display}]}]


def _status(system: str, code: str) -> Dict[str, Any]:
    return {"coding": [{"system": system, "code": code}]}


def _stub(reference: ReferenceInput, profile: str) -> Dict[str, Any]:
    stub_dict: Dict[str, Any] = {
        "id": reference_id(reference.reference),
        "meta": {"profile": [profile]},
    }
    if reference.identifier and reference.identifier.value:
        stub_dict["identifier"] = [reference.identifier.model_dump(exclude_none=True)]
    return stub_dict


# ============================================================================
# Reference-only stubs
# ============================================================================

class PatientMapper:
    """Maps patientReference to a FHIR Patient stub."""

    @staticmethod
    def map(reference: ReferenceInput) -> Patient:
        """
        Build a Patient that carries only what the reference tells us.

        Args:
            reference: Validated patient reference

        Returns:
            FHIR Patient resource whose id is taken from the reference
        """
        patient_dict = _stub(reference, ResourceProfiles.PATIENT)
        if reference.display:
            patient_dict["name"] = [{"use": "official", "text": reference.display}]
        return Patient(**patient_dict)


class PractitionerMapper:
    """Maps authorReference to a FHIR Practitioner stub."""

    @staticmethod
    def map(reference: ReferenceInput) -> Practitioner:
        practitioner_dict = _stub(reference, ResourceProfiles.PRACTITIONER)
        if reference.display:
            practitioner_dict["name"] = [{"use": "official", "text": reference.display}]
        return Practitioner(**practitioner_dict)


class OrganizationMapper:
    """Maps custodianReference (and custodianContact) to a FHIR Organization stub."""

    @staticmethod
    def map(reference: ReferenceInput, contact: Optional[ContactInput] = None) -> Organization:
        """
        Build the custodian Organization.

        Args:
            reference: Validated custodian reference
            contact: Optional validated contact details

        Returns:
            FHIR Organization resource
        """
        organization_dict = _stub(reference, ResourceProfiles.ORGANIZATION)
        if reference.display:
            organization_dict["name"] = reference.display

        if contact and contact.phone:
            organization_dict["telecom"] = [{"system": "phone", "value": contact.phone, "use": "work"}]
        if contact and contact.postal_code:
            organization_dict["address"] = [{
                "use": "work",
                "postalCode": normalize_postal_code(contact.postal_code),
                "country": "JP",
            }]

        return Organization(**organization_dict)


class EncounterMapper:
    """Maps the encounter reference to a FHIR Encounter stub."""

    @staticmethod
    def map(reference: ReferenceInput, encounter_class: str, patient: Reference) -> Encounter:
        """
        Build the Encounter stub.

        Args:
            reference: Validated encounter reference
            encounter_class: v3 ActCode class (AMB for outpatient, IMP for inpatient)
            patient: Reference to the document's Patient

        Returns:
            FHIR Encounter resource with status "unknown"
        """
        encounter_dict = _stub(reference, ResourceProfiles.ENCOUNTER)
        encounter_dict["status"] = "unknown"
        encounter_dict["class"] = {
            "system": CodeSystems.ACT_CODE,
            "code": encounter_class,
            "display": ENCOUNTER_CLASS_DISPLAY.get(encounter_class, encounter_class),
        }
        encounter_dict["subject"] = patient
        return Encounter(**encounter_dict)


ENCOUNTER_CLASS_DISPLAY = {
    "AMB": "ambulatory",
    "IMP": "inpatient encounter",
}


# ============================================================================
# Supporting resources
# ============================================================================

class SupportingKind(str, Enum):
    """Kind of resource produced for a recognized clinical-data section."""
    PROBLEM = "problem"
    DIAGNOSIS = "diagnosis"
    ALLERGY = "allergy"
    MEDICATION = "medication"
    LAB_RESULT = "lab-result"
    VITAL_SIGN = "vital-sign"
    EXAM = "exam"
    IMAGING = "imaging"
    SERVICE_REQUEST = "service-request"
    REFERRAL_REQUEST = "referral-request"
    DOCUMENT_REFERENCE = "document-reference"


@dataclass
class DocumentContext:
    """References and timestamp shared by every resource of one document."""
    patient: Reference
    author: Reference
    custodian: Reference
    created_at: str
    encounter: Optional[Reference] = None


@dataclass
class ClinicalItem:
    """
    One clinical statement to map.

    Either a section entry or, when a section has no entries, the section
    itself (title as code text, narrative as the statement).
    """
    code: Optional[Dict[str, Any]]
    value: Optional[Union[float, str]] = None
    unit: Optional[str] = None
    text: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: SectionEntryInput, section: SectionInput) -> "ClinicalItem":
        return cls(
            code=to_codeable_concept(entry.code),
            value=entry.value,
            unit=entry.unit,
            text=entry.text,
            title=section.title,
        )

    @classmethod
    def from_section(cls, section: SectionInput) -> "ClinicalItem":
        code = {"text": section.title} if section.title else None
        return cls(code=code, text=section.text, title=section.title)

    @property
    def concept(self) -> Dict[str, Any]:
        """Code for the resource; falls back to the statement text."""
        return self.code or {"text": self.text or self.title or "unspecified"}


class ConditionMapper:
    """Maps problem-list and diagnosis items to FHIR Condition resources."""

    @staticmethod
    def map(
        item: ClinicalItem,
        context: DocumentContext,
        category: str = "problem-list-item",
        resource_id: str = None
    ) -> Condition:
        """
        Convert a clinical item to a FHIR Condition resource.

        Args:
            item: Problem or diagnosis statement
            context: Shared document references
            category: condition-category code (problem-list-item or encounter-diagnosis)
            resource_id: Optional pre-allocated resource ID

        Returns:
            FHIR Condition resource
        """
        condition_dict = {
            "id": resource_id,
            "meta": {"profile": [ResourceProfiles.CONDITION]},
            "clinicalStatus": _status(CodeSystems.CONDITION_CLINICAL, "active"),
            "verificationStatus": _status(CodeSystems.CONDITION_VER_STATUS, "confirmed"),
            "category": _category(
                CodeSystems.CONDITION_CATEGORY,
                category,
                "Encounter Diagnosis" if category == "encounter-diagnosis" else "Problem List Item",
            ),
            "code": item.concept,
            "subject": context.patient,
            "encounter": context.encounter,
            "recordedDate": context.created_at,
        }

        if item.text and item.code:
            condition_dict["note"] = [{"text": item.text}]

        return Condition(**condition_dict)


class AllergyIntoleranceMapper:
    """Maps allergy items to FHIR AllergyIntolerance resources."""

    @staticmethod
    def map(item: ClinicalItem, context: DocumentContext, resource_id: str = None) -> AllergyIntolerance:
        allergy_dict = {
            "id": resource_id,
            "meta": {"profile": [ResourceProfiles.ALLERGY_INTOLERANCE]},
            "clinicalStatus": _status(CodeSystems.ALLERGY_CLINICAL, "active"),
            "verificationStatus": _status(CodeSystems.ALLERGY_VERIFICATION, "confirmed"),
            "code": item.concept,
            "patient": context.patient,
            "encounter": context.encounter,
            "recordedDate": context.created_at,
        }

        if item.text and item.code:
            allergy_dict["note"] = [{"text": item.text}]

        return AllergyIntolerance(**allergy_dict)


OBSERVATION_CATEGORIES = {
    SupportingKind.LAB_RESULT: ("laboratory", "Laboratory"),
    SupportingKind.VITAL_SIGN: ("vital-signs", "Vital Signs"),
    SupportingKind.EXAM: ("exam", "Exam"),
    SupportingKind.IMAGING: ("imaging", "Imaging"),
}


class ObservationMapper:
    """Maps lab results, vital signs, exam findings and imaging to FHIR Observation."""

    @staticmethod
    def map(
        item: ClinicalItem,
        context: DocumentContext,
        kind: SupportingKind = SupportingKind.LAB_RESULT,
        resource_id: str = None
    ) -> Observation:
        """
        Convert a clinical item to a FHIR Observation resource.

        Numeric values become valueQuantity (UCUM unit when given); anything
        else becomes valueString.

        Args:
            item: Measurement or finding
            context: Shared document references
            kind: Which observation category to assign
            resource_id: Optional pre-allocated resource ID

        Returns:
            FHIR Observation resource
        """
        category_code, category_display = OBSERVATION_CATEGORIES[kind]
        profile = (
            ResourceProfiles.OBSERVATION_LAB_RESULT
            if kind == SupportingKind.LAB_RESULT
            else ResourceProfiles.OBSERVATION
        )

        obs_dict = {
            "id": resource_id,
            "meta": {"profile": [profile]},
            "status": "final",
            "category": _category(CodeSystems.OBSERVATION_CATEGORY, category_code, category_display),
            "code": item.concept,
            "subject": context.patient,
            "encounter": context.encounter,
            "effectiveDateTime": context.created_at,
        }

        # Value
        if isinstance(item.value, (int, float)):
            quantity = {"value": item.value}
            if item.unit:
                quantity.update({"unit": item.unit, "system": CodeSystems.UCUM, "code": item.unit})
            obs_dict["valueQuantity"] = quantity
            if item.text:
                obs_dict["note"] = [{"text": item.text}]
        elif item.value is not None:
            obs_dict["valueString"] = _format_value(item.value, item.unit)
            if item.text:
                obs_dict["note"] = [{"text": item.text}]
        elif item.text:
            obs_dict["valueString"] = item.text

        return Observation(**obs_dict)


class MedicationRequestMapper:
    """Maps medication items to FHIR MedicationRequest resources."""

    @staticmethod
    def map(item: ClinicalItem, context: DocumentContext, resource_id: str = None) -> MedicationRequest:
        """
        Convert a medication item to a FHIR MedicationRequest resource.

        Args:
            item: Medication statement (YJ/HOT coded or free text)
            context: Shared document references
            resource_id: Optional pre-allocated resource ID

        Returns:
            FHIR MedicationRequest resource
        """
        med_dict = {
            "id": resource_id,
            "meta": {"profile": [ResourceProfiles.MEDICATION_REQUEST]},
            "status": "active",
            "intent": "order",
            "medicationCodeableConcept": item.concept,
            "subject": context.patient,
            "encounter": context.encounter,
            "authoredOn": context.created_at,
            "requester": context.author,
        }

        # Dosage instruction
        dosage_parts = []
        if item.value is not None:
            dosage_parts.append(_format_value(item.value, item.unit))
        if item.text:
            dosage_parts.append(item.text)
        if dosage_parts:
            med_dict["dosageInstruction"] = [{"text": " ".join(dosage_parts)}]

        return MedicationRequest(**med_dict)


class ServiceRequestMapper:
    """Maps requested-service items to FHIR ServiceRequest resources."""

    @staticmethod
    def map(item: ClinicalItem, context: DocumentContext, resource_id: str = None) -> ServiceRequest:
        service_dict = {
            "id": resource_id,
            "meta": {"profile": [ResourceProfiles.SERVICE_REQUEST]},
            "status": "active",
            "intent": "order",
            "code": item.concept,
            "subject": context.patient,
            "encounter": context.encounter,
            "authoredOn": context.created_at,
            "requester": context.author,
        }

        if item.text and item.code:
            service_dict["note"] = [{"text": item.text}]

        return ServiceRequest(**service_dict)


class ReferralRequestMapper:
    """Maps the referral reason to a ReferralRequest resource."""

    @staticmethod
    def map(item: ClinicalItem, context: DocumentContext, resource_id: str = None) -> ReferralRequest:
        """
        Convert the referral reason to a ReferralRequest.

        Args:
            item: Referral reason statement
            context: Shared document references
            resource_id: Optional pre-allocated resource ID

        Returns:
            ReferralRequest resource requested by the document author
        """
        referral_dict = {
            "id": resource_id,
            "status": "active",
            "intent": "order",
            "subject": context.patient,
            "context": context.encounter,
            "authoredOn": context.created_at,
            "requester": {"agent": context.author, "onBehalfOf": context.custodian},
            "reasonCode": [item.concept],
            "description": item.text,
        }
        return ReferralRequest(**referral_dict)


class DocumentReferenceMapper:
    """Maps additional documentation to FHIR DocumentReference resources."""

    @staticmethod
    def map(item: ClinicalItem, context: DocumentContext, resource_id: str = None) -> DocumentReference:
        """
        Convert an attached document to a DocumentReference.

        The statement text is carried as a base64 ``text/plain`` attachment.

        Args:
            item: Attached documentation
            context: Shared document references
            resource_id: Optional pre-allocated resource ID

        Returns:
            FHIR DocumentReference resource
        """
        attachment = {"contentType": "text/plain; charset=utf-8", "language": "ja"}
        if item.text:
            attachment["data"] = base64.b64encode(item.text.encode("utf-8")).decode("ascii")
        if item.title:
            attachment["title"] = item.title

        doc_dict = {
            "id": resource_id,
            "meta": {"profile": [ResourceProfiles.DOCUMENT_REFERENCE]},
            "status": "current",
            "type": item.code,
            "subject": context.patient,
            "date": context.created_at,
            "author": [context.author],
            "custodian": context.custodian,
            "description": item.title,
            "content": [{"attachment": attachment}],
        }
        return DocumentReference(**doc_dict)


def map_supporting(
    kind: SupportingKind,
    item: ClinicalItem,
    context: DocumentContext,
    resource_id: str = None
) -> FhirResource:
    """Dispatch a clinical item to the mapper for its supporting-resource kind."""
    if kind == SupportingKind.PROBLEM:
        return ConditionMapper.map(item, context, "problem-list-item", resource_id)
    if kind == SupportingKind.DIAGNOSIS:
        return ConditionMapper.map(item, context, "encounter-diagnosis", resource_id)
    if kind == SupportingKind.ALLERGY:
        return AllergyIntoleranceMapper.map(item, context, resource_id)
    if kind == SupportingKind.MEDICATION:
        return MedicationRequestMapper.map(item, context, resource_id)
    if kind in OBSERVATION_CATEGORIES:
        return ObservationMapper.map(item, context, kind, resource_id)
    if kind == SupportingKind.SERVICE_REQUEST:
        return ServiceRequestMapper.map(item, context, resource_id)
    if kind == SupportingKind.REFERRAL_REQUEST:
        return ReferralRequestMapper.map(item, context, resource_id)
    if kind == SupportingKind.DOCUMENT_REFERENCE:
        return DocumentReferenceMapper.map(item, context, resource_id)
    raise ValueError(f"Unknown supporting resource kind: {kind}")


SUPPORTING_RESOURCE_TYPES = {
    SupportingKind.PROBLEM: Condition.resource_type,
    SupportingKind.DIAGNOSIS: Condition.resource_type,
    SupportingKind.ALLERGY: AllergyIntolerance.resource_type,
    SupportingKind.MEDICATION: MedicationRequest.resource_type,
    SupportingKind.LAB_RESULT: Observation.resource_type,
    SupportingKind.VITAL_SIGN: Observation.resource_type,
    SupportingKind.EXAM: Observation.resource_type,
    SupportingKind.IMAGING: Observation.resource_type,
    SupportingKind.SERVICE_REQUEST: ServiceRequest.resource_type,
    SupportingKind.REFERRAL_REQUEST: ReferralRequest.resource_type,
    SupportingKind.DOCUMENT_REFERENCE: DocumentReference.resource_type,
}


# ============================================================================
# Composition
# ============================================================================

class CompositionMapper:
    """Maps the whole document to the Composition that heads the Bundle."""

    @staticmethod
    def map(
        document: ClinicalDocument,
        context: DocumentContext,
        type_coding: Dict[str, str],
        title: str,
        profile: str,
        section_entries: List[List[Reference]],
        resource_id: str = None
    ) -> Composition:
        """
        Build the Composition, copying sections in input order.

        Args:
            document: Validated input document
            context: Shared document references
            type_coding: LOINC coding that identifies the document type
            title: Fixed document title
            profile: JP-CLINS Composition profile URL
            section_entries: References to supporting resources, one list per section
            resource_id: Optional pre-allocated resource ID

        Returns:
            FHIR Composition resource
        """
        sections = []
        for section, entries in zip(document.sections, section_entries):
            section_dict = {
                "title": section.title,
                "code": to_codeable_concept(section.code),
                "text": to_narrative(section.text),
            }
            if entries:
                section_dict["entry"] = entries
            sections.append(section_dict)

        composition_dict = {
            "id": resource_id,
            "meta": {"profile": [profile]},
            "status": document.document_status,
            "type": {"coding": [type_coding], "text": type_coding.get("display")},
            "subject": context.patient,
            "encounter": context.encounter,
            "date": context.created_at,
            "author": [context.author],
            "title": title,
            "custodian": context.custodian,
            "section": sections,
        }
        return Composition(**composition_dict)
