"""
JP-CLINS Constants

Profile URLs, code systems and LOINC codes from the JP-CLINS v1.11.0
implementation guide (https://jpfhir.jp/fhir/clins/igv1/index.html).
"""
from enum import Enum


IMPLEMENTATION_GUIDE_VERSION = "1.11.0"
FHIR_VERSION = "R4"

BASE_PROFILE_URL = "http://jpfhir.jp/fhir/clins/StructureDefinition/"


class DocumentType(str, Enum):
    """JP-CLINS document types handled by the converter"""
    EREFERRAL = "eReferral"
    EDISCHARGE_SUMMARY = "eDischargeSummary"
    ECHECKUP = "eCheckup"
    UNKNOWN = "unknown"


class DocumentStatus(str, Enum):
    """Accepted input document statuses (subset of FHIR composition-status)"""
    FINAL = "final"
    PRELIMINARY = "preliminary"


# ============================================================================
# Profiles
# ============================================================================

class BundleProfiles:
    EREFERRAL = BASE_PROFILE_URL + "JP_Bundle_eReferral"
    EDISCHARGE_SUMMARY = BASE_PROFILE_URL + "JP_Bundle_eDischargeSummary"
    ECHECKUP = BASE_PROFILE_URL + "JP_Bundle_eCheckup"


class ResourceProfiles:
    COMPOSITION_EREFERRAL = BASE_PROFILE_URL + "JP_Composition_eReferral"
    COMPOSITION_EDISCHARGE_SUMMARY = BASE_PROFILE_URL + "JP_Composition_eDischargeSummary"
    COMPOSITION_ECHECKUP = BASE_PROFILE_URL + "JP_Composition_eCheckup"
    PATIENT = BASE_PROFILE_URL + "JP_Patient_CLINS"
    PRACTITIONER = BASE_PROFILE_URL + "JP_Practitioner_CLINS"
    ORGANIZATION = BASE_PROFILE_URL + "JP_Organization_CLINS"
    ENCOUNTER = BASE_PROFILE_URL + "JP_Encounter_CLINS"
    CONDITION = BASE_PROFILE_URL + "JP_Condition_eCS"
    ALLERGY_INTOLERANCE = BASE_PROFILE_URL + "JP_AllergyIntolerance_eCS"
    OBSERVATION_LAB_RESULT = BASE_PROFILE_URL + "JP_Observation_LabResult_eCS"
    OBSERVATION = BASE_PROFILE_URL + "JP_Observation_CLINS"
    MEDICATION_REQUEST = BASE_PROFILE_URL + "JP_MedicationRequest_eCS"
    SERVICE_REQUEST = BASE_PROFILE_URL + "JP_ServiceRequest_CLINS"
    DOCUMENT_REFERENCE = BASE_PROFILE_URL + "JP_DocumentReference_CLINS"


# ============================================================================
# Code systems
# ============================================================================

class CodeSystems:
    LOINC = "http://loinc.org"
    SNOMED = "http://snomed.info/sct"
    ICD10 = "http://hl7.org/fhir/sid/icd-10"
    UCUM = "http://unitsofmeasure.org"

    # Medication codes
    YJ_CODE = "urn:oid:1.2.392.100495.20.2.74"
    HOT_CODE = "urn:oid:1.2.392.100495.20.2.73"
    YAKUZAI_CODE = "http://jpfhir.jp/fhir/core/CodeSystem/yakuzai-code"
    HOT_CODE_URI = "http://jpfhir.jp/fhir/core/CodeSystem/hot-code"

    # Laboratory codes
    JLAC10 = "urn:oid:1.2.392.200119.4.504"
    JLAC10_URI = "http://jpfhir.jp/fhir/core/CodeSystem/JLAC10"

    # Diagnosis codes
    ICD10_CM_JP = "http://jpfhir.jp/fhir/core/CodeSystem/icd-10-cm-jp"
    ICD11_MMS_JP = "http://jpfhir.jp/fhir/core/CodeSystem/icd-11-mms-jp"

    # HL7 terminology
    CONDITION_CLINICAL = "http://terminology.hl7.org/CodeSystem/condition-clinical"
    CONDITION_VER_STATUS = "http://terminology.hl7.org/CodeSystem/condition-ver-status"
    CONDITION_CATEGORY = "http://terminology.hl7.org/CodeSystem/condition-category"
    ALLERGY_CLINICAL = "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical"
    ALLERGY_VERIFICATION = "http://terminology.hl7.org/CodeSystem/allergyintolerance-verification"
    OBSERVATION_CATEGORY = "http://terminology.hl7.org/CodeSystem/observation-category"
    ACT_CODE = "http://terminology.hl7.org/CodeSystem/v3-ActCode"


class IdentifierSystems:
    PHYSICIAN_LICENSE = "urn:oid:1.2.392.100495.20.3.31"
    NURSE_LICENSE = "urn:oid:1.2.392.100495.20.3.32"
    PHARMACIST_LICENSE = "urn:oid:1.2.392.100495.20.3.33"
    MEDICAL_INSTITUTION = "urn:oid:1.2.392.100495.20.3.21"
    PATIENT_ID = "urn:oid:1.2.392.100495.20.3.51"
    BUNDLE = "http://jpfhir.jp/fhir/clins/bundle-identifier"


# ============================================================================
# LOINC codes
# ============================================================================

class LoincCodes:
    # Document types (Composition.type discriminants)
    REFERRAL_NOTE = "18761-7"
    DISCHARGE_SUMMARY = "18842-5"
    CHECKUP_REPORT = "11502-2"

    # Sections
    CHIEF_COMPLAINT = "10154-3"
    REFERRAL_REASON = "42349-1"
    REQUESTED_SERVICES = "62387-6"
    MEDICATIONS = "10160-0"
    ALLERGIES = "48765-2"
    PROBLEM_LIST = "11450-4"
    LAB_RESULTS = "30954-2"
    ADDITIONAL_DOCUMENTATION = "77599-9"
    ADMISSION_REASON = "46241-6"
    HOSPITAL_COURSE = "8648-8"
    DISCHARGE_DIAGNOSIS = "11535-2"
    DISCHARGE_MEDICATIONS = "10183-2"
    PLAN_OF_CARE = "18776-5"
    VITAL_SIGNS = "8716-3"
    MICROBIOLOGY = "18725-2"
    PHYSICAL_FINDINGS = "29545-1"
    IMAGING = "18748-4"
    CHECKUP_ASSESSMENT = "51847-2"


DOCUMENT_TYPE_CODES = {
    LoincCodes.REFERRAL_NOTE: DocumentType.EREFERRAL,
    LoincCodes.DISCHARGE_SUMMARY: DocumentType.EDISCHARGE_SUMMARY,
    LoincCodes.CHECKUP_REPORT: DocumentType.ECHECKUP,
}

XHTML_NAMESPACE = "http://www.w3.org/1999/xhtml"
FHIR_NAMESPACE = "http://hl7.org/fhir"
