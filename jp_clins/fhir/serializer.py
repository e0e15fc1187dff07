"""
FHIR Bundle Serializer

Renders a document Bundle as FHIR JSON or FHIR XML.

JSON omits absent elements and empty containers. XML follows the FHIR XML
conventions: elements in the http://hl7.org/fhir namespace, primitive values
in a ``value`` attribute, resources wrapped in an element named after their
type and narrative ``div`` content embedded as XHTML.
"""
from typing import Any, Dict, Optional
from dataclasses import dataclass
import json
import logging

from lxml import etree

from .constants import DOCUMENT_TYPE_CODES, CodeSystems, DocumentType, FHIR_NAMESPACE
from .errors import SerializationFailure, UnsupportedFormatError
from .resources import Bundle, Composition

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "json": "application/fhir+json; charset=utf-8",
    "xml": "application/fhir+xml; charset=utf-8",
}

SUPPORTED_FORMATS = tuple(CONTENT_TYPES)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


@dataclass
class SerializationResult:
    """Serialized Bundle plus what callers need to return it."""
    content: str
    content_type: str
    format: str
    resource_count: int
    bundle_id: Optional[str]
    document_type: DocumentType


def _normalize_format(fmt: Optional[str]) -> str:
    return (fmt or "").strip().lower()


def is_valid_format(fmt: Optional[str]) -> bool:
    """Whether ``fmt`` is json or xml (case-insensitive)."""
    return _normalize_format(fmt) in CONTENT_TYPES


def get_content_type(fmt: str) -> str:
    """
    Content type for an output format.

    Raises:
        UnsupportedFormatError: If the format is not json or xml
    """
    normalized = _normalize_format(fmt)
    if normalized not in CONTENT_TYPES:
        raise UnsupportedFormatError(fmt)
    return CONTENT_TYPES[normalized]


def classify_document_type(bundle: Any) -> DocumentType:
    """
    Map the Composition type coding of entry 0 back to a document type.

    Accepts a Bundle model or FHIR JSON-shaped data. Never raises; anything
    unexpected yields DocumentType.UNKNOWN.
    """
    try:
        if isinstance(bundle, Bundle):
            composition = bundle.entry[0].resource
            if not isinstance(composition, Composition):
                return DocumentType.UNKNOWN
            codings = [c.model_dump() for c in composition.type.coding or []]
        else:
            composition = bundle["entry"][0]["resource"]
            if composition.get("resourceType") != "Composition":
                return DocumentType.UNKNOWN
            codings = composition["type"]["coding"]

        if not codings:
            return DocumentType.UNKNOWN
        loinc = [c for c in codings if c.get("system") == CodeSystems.LOINC]
        code = (loinc or codings)[0].get("code")
        return DOCUMENT_TYPE_CODES.get(code, DocumentType.UNKNOWN)
    except (AttributeError, IndexError, KeyError, TypeError):
        return DocumentType.UNKNOWN


# ============================================================================
# Renderers
# ============================================================================

def to_json(data: Dict[str, Any], pretty_format: bool = True) -> str:
    """Render FHIR JSON-shaped data; pretty output uses a 2-space indent."""
    if pretty_format:
        return json.dumps(data, ensure_ascii=False, indent=2)
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def _xml_primitive(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _append_element(parent: etree._Element, name: str, value: Any) -> None:
    if isinstance(value, list):
        for item in value:
            _append_element(parent, name, item)
        return

    if name == "div" and isinstance(value, str):
        try:
            parent.append(etree.fromstring(value))
        except etree.XMLSyntaxError as e:
            raise SerializationFailure(f"Narrative div is not well-formed XHTML: {e}") from e
        return

    element = etree.SubElement(parent, f"{{{FHIR_NAMESPACE}}}{name}")
    if isinstance(value, dict):
        if "resourceType" in value:
            _append_resource(element, value)
        else:
            _append_children(element, value)
    else:
        element.set("value", _xml_primitive(value))


def _append_children(element: etree._Element, data: Dict[str, Any]) -> None:
    for name, value in data.items():
        if name == "resourceType":
            continue
        _append_element(element, name, value)


def _append_resource(parent: etree._Element, resource: Dict[str, Any]) -> None:
    element = etree.SubElement(parent, f"{{{FHIR_NAMESPACE}}}{resource['resourceType']}")
    _append_children(element, resource)


def to_xml(data: Dict[str, Any], pretty_format: bool = True) -> str:
    """Render FHIR JSON-shaped data as FHIR XML with an XML declaration."""
    root = etree.Element(f"{{{FHIR_NAMESPACE}}}{data['resourceType']}", nsmap={None: FHIR_NAMESPACE})
    _append_children(root, data)
    body = etree.tostring(root, encoding="unicode", pretty_print=pretty_format)
    separator = "\n" if pretty_format else ""
    return f"{XML_DECLARATION}{separator}{body}".rstrip("\n")


# ============================================================================
# Entry point
# ============================================================================

def serialize_bundle(bundle: Bundle, format: str = "json", pretty_format: bool = True) -> SerializationResult:
    """
    Serialize a Bundle to FHIR JSON or FHIR XML.

    Args:
        bundle: Assembled document Bundle
        format: "json" or "xml" (case-insensitive)
        pretty_format: Indent output when True, compact otherwise

    Returns:
        SerializationResult with the rendered string and its content type

    Raises:
        UnsupportedFormatError: If the format is not json or xml
        SerializationFailure: If the Bundle cannot be rendered
    """
    content_type = get_content_type(format)
    normalized = _normalize_format(format)

    try:
        data = bundle.to_dict()
        content = to_json(data, pretty_format) if normalized == "json" else to_xml(data, pretty_format)
    except SerializationFailure:
        raise
    except (TypeError, ValueError, etree.LxmlError) as e:
        raise SerializationFailure(f"Failed to serialize bundle {bundle.id} as {normalized}: {e}") from e

    result = SerializationResult(
        content=content,
        content_type=content_type,
        format=normalized,
        resource_count=len(bundle.entry),
        bundle_id=bundle.id,
        document_type=classify_document_type(bundle),
    )
    logger.info(
        "Serialized bundle %s (%s, %d resources) as %s",
        result.bundle_id, result.document_type.value, result.resource_count, normalized
    )
    return result
