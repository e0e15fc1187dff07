"""
Coded-Value Validators

Format checks for Japan-specific identifiers and codes used by JP-CLINS
documents. Only the *format* is checked; no terminology lookup is made.

Every check returns a CodeCheck instead of raising, so callers can collect
several failures from one document before reporting them.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional
import re

from .constants import CodeSystems, IdentifierSystems


@dataclass(frozen=True)
class CodeCheck:
    """
    Verdict of a single format check.

    Attributes:
        valid: Whether the value passed the check
        reason: Human-readable reason when the value was rejected
    """
    valid: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def ok(cls) -> "CodeCheck":
        """Create a passing verdict."""
        return cls(valid=True)

    @classmethod
    def fail(cls, reason: str) -> "CodeCheck":
        """Create a failing verdict."""
        return cls(valid=False, reason=reason)


DRUG_PRICE_CODE_PATTERN = re.compile(r"^\d{4}[A-Z]{2}\d{3}[A-Z]\d$")
DRUG_HOT_CODE_PATTERN = re.compile(r"^\d{9}$")
LAB_TEST_CODE_PATTERN = re.compile(r"^[0-9A-Za-z]{17}$")
ICD10_CM_JP_PATTERN = re.compile(r"^[A-Z]\d{2,3}(\.\d{1,4})?$")
ICD11_MMS_JP_PATTERN = re.compile(r"^[0-9A-Z]{2,4}(\.[0-9A-Z]{1,2})?$")
PHYSICIAN_LICENSE_PATTERN = re.compile(r"^\d{6}$")
NURSE_LICENSE_PATTERN = re.compile(r"^\d{8}$")
PHARMACIST_LICENSE_PATTERN = re.compile(r"^[A-Za-z]\d{6}$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{3}-?\d{4}$")
MOBILE_PHONE_PATTERN = re.compile(r"^0[789]0\d{8}$")
LANDLINE_PHONE_PATTERN = re.compile(r"^0[1-9]\d{8}$")
FACILITY_CODE_PATTERN = re.compile(r"^\d{10}$")
REFERENCE_PATTERN = re.compile(
    r"^([A-Z][A-Za-z]+/[A-Za-z0-9\-.]{1,64}"
    r"|urn:uuid:[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})$"
)

PHONE_SEPARATORS = re.compile(r"[\s\-()]")
XML_INVALID_CHAR_PATTERN = re.compile("[^\t\n\r\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_drug_price_code(code: Optional[str]) -> CodeCheck:
    """
    Validate a YJ (drug price listing) code.

    Format: 4 digits, 2 uppercase letters, 3 digits, 1 uppercase letter,
    1 digit (11 characters), e.g. ``1234AB567C8``.
    """
    if _is_blank(code):
        return CodeCheck.fail("Drug price code is empty")
    if not DRUG_PRICE_CODE_PATTERN.fullmatch(code):
        return CodeCheck.fail(
            f"Drug price code '{code}' must match 4 digits, 2 letters, 3 digits, "
            "1 letter, 1 digit (11 characters)"
        )
    return CodeCheck.ok()


def validate_drug_hot_code(code: Optional[str]) -> CodeCheck:
    """Validate a HOT9 drug code (exactly 9 digits)."""
    if _is_blank(code):
        return CodeCheck.fail("Drug HOT code is empty")
    if not DRUG_HOT_CODE_PATTERN.fullmatch(code):
        return CodeCheck.fail(f"Drug HOT code '{code}' must be exactly 9 digits")
    return CodeCheck.ok()


def validate_lab_test_code(code: Optional[str]) -> CodeCheck:
    """
    Validate a JLAC10 laboratory test code.

    JLAC10 codes are 17 alphanumeric characters
    (analyte 5 + identification 4 + material 3 + method 3 + result 2).
    """
    if _is_blank(code):
        return CodeCheck.fail("Lab-test code is empty")
    if not LAB_TEST_CODE_PATTERN.fullmatch(code):
        return CodeCheck.fail(
            f"Lab-test code '{code}' must be exactly 17 alphanumeric characters"
        )
    return CodeCheck.ok()


def validate_icd10_cm_jp_code(code: Optional[str]) -> CodeCheck:
    """
    Validate an ICD-10-CM-JP diagnosis code.

    One uppercase letter, 2-3 digits and an optional ``.`` with 1-4 digits,
    e.g. ``I21``, ``I21.0``, ``Z51.11``.
    """
    if _is_blank(code):
        return CodeCheck.fail("ICD-10-CM-JP code is empty")
    if not ICD10_CM_JP_PATTERN.fullmatch(code):
        return CodeCheck.fail(
            f"ICD-10-CM-JP code '{code}' must be 1 letter and 2-3 digits, "
            "optionally followed by '.' and 1-4 digits"
        )
    return CodeCheck.ok()


def validate_icd11_mms_jp_code(code: Optional[str]) -> CodeCheck:
    """Validate an ICD-11-MMS-JP diagnosis code, e.g. ``1A00`` or ``8E60.1``."""
    if _is_blank(code):
        return CodeCheck.fail("ICD-11-MMS-JP code is empty")
    if not ICD11_MMS_JP_PATTERN.fullmatch(code):
        return CodeCheck.fail(
            f"ICD-11-MMS-JP code '{code}' must be 2-4 uppercase alphanumerics, "
            "optionally followed by '.' and 1-2 more"
        )
    return CodeCheck.ok()


def validate_xml_text(text: Optional[str]) -> CodeCheck:
    """
    Check that free text only holds characters XML 1.0 can carry.

    Control characters other than tab, newline and carriage return are
    rejected. Absent or empty text passes.
    """
    if not text:
        return CodeCheck.ok()
    match = XML_INVALID_CHAR_PATTERN.search(text)
    if match:
        return CodeCheck.fail(
            f"Text contains a character not allowed in XML (U+{ord(match.group()):04X})"
        )
    return CodeCheck.ok()


def validate_physician_license(number: Optional[str]) -> CodeCheck:
    """Validate a physician license number (6 digits)."""
    if _is_blank(number):
        return CodeCheck.fail("Physician license number is empty")
    if not PHYSICIAN_LICENSE_PATTERN.fullmatch(number):
        return CodeCheck.fail(f"Physician license number '{number}' must be exactly 6 digits")
    return CodeCheck.ok()


def validate_nurse_license(number: Optional[str]) -> CodeCheck:
    """Validate a nurse license number (8 digits)."""
    if _is_blank(number):
        return CodeCheck.fail("Nurse license number is empty")
    if not NURSE_LICENSE_PATTERN.fullmatch(number):
        return CodeCheck.fail(f"Nurse license number '{number}' must be exactly 8 digits")
    return CodeCheck.ok()


def validate_pharmacist_license(number: Optional[str]) -> CodeCheck:
    """Validate a pharmacist license number (1 letter followed by 6 digits)."""
    if _is_blank(number):
        return CodeCheck.fail("Pharmacist license number is empty")
    if not PHARMACIST_LICENSE_PATTERN.fullmatch(number):
        return CodeCheck.fail(
            f"Pharmacist license number '{number}' must be 1 letter followed by 6 digits"
        )
    return CodeCheck.ok()


def validate_postal_code(code: Optional[str]) -> CodeCheck:
    """
    Validate a Japanese postal code.

    Seven digits, written either ``1000001`` or ``100-0001``.
    """
    if _is_blank(code):
        return CodeCheck.fail("Postal code is empty")
    if not POSTAL_CODE_PATTERN.fullmatch(code):
        return CodeCheck.fail(f"Postal code '{code}' must be exactly 7 digits")
    return CodeCheck.ok()


def normalize_postal_code(code: str) -> str:
    """Render a valid postal code in the conventional ``NNN-NNNN`` form."""
    digits = code.strip().replace("-", "")
    return f"{digits[:3]}-{digits[3:]}"


def validate_phone_number(number: Optional[str]) -> CodeCheck:
    """
    Validate a Japanese phone number.

    Accepts mobile numbers (090/080/070 followed by 8 digits) and landline
    numbers (10 digits: leading 0, area code and local number). Hyphens,
    spaces and parentheses are ignored.
    """
    if _is_blank(number):
        return CodeCheck.fail("Phone number is empty")
    digits = PHONE_SEPARATORS.sub("", number)
    if MOBILE_PHONE_PATTERN.fullmatch(digits) or LANDLINE_PHONE_PATTERN.fullmatch(digits):
        return CodeCheck.ok()
    return CodeCheck.fail(
        f"Phone number '{number}' is neither a mobile (090/080/070 + 8 digits) "
        "nor a 10-digit landline number"
    )


def validate_facility_code(code: Optional[str]) -> CodeCheck:
    """
    Validate a medical institution code.

    10 digits; the first two digits are the prefecture code (01-47).
    """
    if _is_blank(code):
        return CodeCheck.fail("Facility code is empty")
    if not FACILITY_CODE_PATTERN.fullmatch(code):
        return CodeCheck.fail(f"Facility code '{code}' must be exactly 10 digits")
    if not 1 <= int(code[:2]) <= 47:
        return CodeCheck.fail(f"Facility code '{code}' has an invalid prefecture code '{code[:2]}'")
    return CodeCheck.ok()


def validate_reference(reference: Optional[str]) -> CodeCheck:
    """Validate the syntactic shape of a FHIR reference (``Type/id`` or ``urn:uuid:``)."""
    if _is_blank(reference):
        return CodeCheck.fail("Reference is empty")
    if not REFERENCE_PATTERN.fullmatch(reference):
        return CodeCheck.fail(
            f"Reference '{reference}' must have the form 'ResourceType/id' or 'urn:uuid:<uuid>'"
        )
    return CodeCheck.ok()


CODING_VALIDATORS: Dict[str, Callable[[Optional[str]], CodeCheck]] = {
    CodeSystems.YJ_CODE: validate_drug_price_code,
    CodeSystems.YAKUZAI_CODE: validate_drug_price_code,
    CodeSystems.HOT_CODE: validate_drug_hot_code,
    CodeSystems.HOT_CODE_URI: validate_drug_hot_code,
    CodeSystems.JLAC10: validate_lab_test_code,
    CodeSystems.JLAC10_URI: validate_lab_test_code,
    CodeSystems.ICD10_CM_JP: validate_icd10_cm_jp_code,
    CodeSystems.ICD11_MMS_JP: validate_icd11_mms_jp_code,
}

IDENTIFIER_VALIDATORS: Dict[str, Callable[[Optional[str]], CodeCheck]] = {
    IdentifierSystems.PHYSICIAN_LICENSE: validate_physician_license,
    IdentifierSystems.NURSE_LICENSE: validate_nurse_license,
    IdentifierSystems.PHARMACIST_LICENSE: validate_pharmacist_license,
    IdentifierSystems.MEDICAL_INSTITUTION: validate_facility_code,
}


def check_coding(system: Optional[str], code: Optional[str]) -> CodeCheck:
    """
    Check a coding against the format rules of its code system.

    Codings from systems without a known format pass.
    """
    validator = CODING_VALIDATORS.get(system or "")
    if validator is None:
        return CodeCheck.ok()
    return validator(code)


def check_identifier(system: Optional[str], value: Optional[str]) -> CodeCheck:
    """
    Check an identifier value against the format rules of its system.

    Identifier systems without a known format pass.
    """
    validator = IDENTIFIER_VALIDATORS.get(system or "")
    if validator is None:
        return CodeCheck.ok()
    return validator(value)
