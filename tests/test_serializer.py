"""
Serializer Tests

JSON and XML rendering, format handling and document-type classification.
"""
import json

import pytest
from lxml import etree

from jp_clins.fhir.bundler import BundleAssembler, SequentialIdGenerator
from jp_clins.fhir.constants import DocumentType
from jp_clins.fhir.converter import transform_document
from jp_clins.fhir.errors import SerializationFailure, UnsupportedFormatError
from jp_clins.fhir.resources import (
    CodeableConcept,
    Coding,
    Composition,
    CompositionSection,
    Narrative,
    Reference,
)
from jp_clins.fhir.serializer import (
    classify_document_type,
    get_content_type,
    is_valid_format,
    serialize_bundle,
)


FHIR = "{http://hl7.org/fhir}"
XHTML = "{http://www.w3.org/1999/xhtml}"


def build_bundle(data, document_type="eReferral"):
    result = transform_document(
        data, document_type, id_generator=SequentialIdGenerator(), base_url="http://example.org/fhir"
    )
    assert result.success, result.errors
    return result.bundle


# ============================================================================
# Format Handling
# ============================================================================

class TestFormats:
    """Test format checks and content types."""

    @pytest.mark.parametrize("fmt", ["json", "xml", "JSON", "Xml", " json "])
    def test_valid_formats(self, fmt):
        assert is_valid_format(fmt) is True

    @pytest.mark.parametrize("fmt", ["yaml", "", None, "ttl", "jsonx"])
    def test_invalid_formats(self, fmt):
        assert is_valid_format(fmt) is False

    def test_content_types(self):
        assert get_content_type("json") == "application/fhir+json; charset=utf-8"
        assert get_content_type("XML") == "application/fhir+xml; charset=utf-8"

    def test_unsupported_format_raises(self, ereferral_data):
        bundle = build_bundle(ereferral_data)
        with pytest.raises(UnsupportedFormatError) as exc_info:
            serialize_bundle(bundle, "yaml")
        assert isinstance(exc_info.value, ValueError)
        assert exc_info.value.format == "yaml"


# ============================================================================
# JSON
# ============================================================================

class TestJsonSerialization:
    """Test FHIR JSON output."""

    def test_pretty_json(self, ereferral_data):
        result = serialize_bundle(build_bundle(ereferral_data), "json", pretty_format=True)

        assert result.content.startswith('{\n  "resourceType": "Bundle",')
        assert result.content_type == "application/fhir+json; charset=utf-8"
        assert result.format == "json"

    def test_compact_json(self, ereferral_data):
        result = serialize_bundle(build_bundle(ereferral_data), "JSON", pretty_format=False)

        assert "\n" not in result.content
        assert result.content.startswith('{"resourceType":"Bundle",')
        assert result.format == "json"

    def test_json_content(self, ereferral_data):
        result = serialize_bundle(build_bundle(ereferral_data), "json")
        data = json.loads(result.content)

        assert data["type"] == "document"
        assert data["timestamp"] == "2024-01-15T10:30:00+09:00"
        composition = data["entry"][0]["resource"]
        assert composition["resourceType"] == "Composition"
        assert composition["type"]["coding"][0]["code"] == "18761-7"
        assert data["entry"][4]["resource"]["class"]["code"] == "AMB"

    def test_japanese_text_not_escaped(self, ereferral_data):
        result = serialize_bundle(build_bundle(ereferral_data), "json")
        assert "電子紹介状" in result.content

    def test_absent_fields_omitted(self, ereferral_data):
        del ereferral_data["encounter"]
        result = serialize_bundle(build_bundle(ereferral_data), "json")
        data = json.loads(result.content)

        assert "null" not in result.content
        assert "[]" not in result.content
        assert "encounter" not in data["entry"][0]["resource"]
        assert "entry" not in data["entry"][0]["resource"]["section"][0]

    def test_empty_strings_omitted(self, ereferral_data):
        ereferral_data["sections"][0]["title"] = ""
        ereferral_data["sections"][1]["code"]["coding"][0]["display"] = ""
        ereferral_data["sections"][3]["entries"][0]["unit"] = ""
        result = serialize_bundle(build_bundle(ereferral_data), "json", pretty_format=False)
        data = json.loads(result.content)

        assert '""' not in result.content
        section = data["entry"][0]["resource"]["section"][0]
        assert "title" not in section
        assert section["code"]["coding"][0]["code"] == "10154-3"

    def test_result_metadata(self, ereferral_data):
        bundle = build_bundle(ereferral_data)
        result = serialize_bundle(bundle, "json")

        assert result.resource_count == 9
        assert result.bundle_id == bundle.id
        assert result.document_type == DocumentType.EREFERRAL


# ============================================================================
# XML
# ============================================================================

class TestXmlSerialization:
    """Test FHIR XML output."""

    def parse(self, content):
        return etree.fromstring(content.encode("utf-8"))

    def test_declaration_and_root(self, ereferral_data):
        result = serialize_bundle(build_bundle(ereferral_data), "xml")
        root = self.parse(result.content)

        assert result.content.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert result.content_type == "application/fhir+xml; charset=utf-8"
        assert root.tag == f"{FHIR}Bundle"

    def test_primitives_as_value_attributes(self, ereferral_data):
        root = self.parse(serialize_bundle(build_bundle(ereferral_data), "xml").content)

        assert root.find(f"{FHIR}type").get("value") == "document"
        assert root.find(f"{FHIR}timestamp").get("value") == "2024-01-15T10:30:00+09:00"

    def test_resources_wrapped_by_type(self, ereferral_data):
        root = self.parse(serialize_bundle(build_bundle(ereferral_data), "xml").content)
        entries = root.findall(f"{FHIR}entry")

        assert len(entries) == 9
        first = entries[0].find(f"{FHIR}resource")[0]
        assert first.tag == f"{FHIR}Composition"
        code = first.find(f"{FHIR}type/{FHIR}coding/{FHIR}code")
        assert code.get("value") == "18761-7"

    def test_repeated_elements(self, ereferral_data):
        root = self.parse(serialize_bundle(build_bundle(ereferral_data), "xml").content)
        composition = root.find(f"{FHIR}entry/{FHIR}resource/{FHIR}Composition")

        assert len(composition.findall(f"{FHIR}section")) == 5

    def test_narrative_embedded_as_xhtml(self, ereferral_data):
        root = self.parse(serialize_bundle(build_bundle(ereferral_data), "xml").content)
        section = root.find(f"{FHIR}entry/{FHIR}resource/{FHIR}Composition/{FHIR}section")
        div = section.find(f"{FHIR}text/{XHTML}div")

        assert div is not None
        assert div.text == "胸痛"

    def test_integral_decimals_rendered_plainly(self, ereferral_data):
        root = self.parse(serialize_bundle(build_bundle(ereferral_data), "xml").content)
        value = root.find(f".//{FHIR}Observation/{FHIR}valueQuantity/{FHIR}value")
        assert value.get("value") == "165"

    def test_compact_xml(self, ereferral_data):
        result = serialize_bundle(build_bundle(ereferral_data), "xml", pretty_format=False)
        assert "\n" not in result.content

    def test_malformed_narrative_fails(self):
        composition = Composition(
            status="final",
            type=CodeableConcept(coding=[Coding(system="http://loinc.org", code="18761-7")]),
            date="2024-01-15T10:30:00+09:00",
            author=[Reference(reference="Practitioner/p1")],
            title="電子紹介状 (eReferral)",
            section=[CompositionSection(title="broken", text=Narrative(div="<div>unclosed"))],
        )
        bundle = BundleAssembler(base_url="http://example.org/fhir").assemble(
            [composition], 0, DocumentType.EREFERRAL, "2024-01-15T10:30:00+09:00"
        )

        with pytest.raises(SerializationFailure):
            serialize_bundle(bundle, "xml")


# ============================================================================
# Document Type Classification
# ============================================================================

class TestClassification:
    """Test mapping a Bundle back to its document type."""

    def test_classify_bundles(self, ereferral_data, discharge_summary_data, checkup_data):
        assert classify_document_type(build_bundle(ereferral_data)) == DocumentType.EREFERRAL
        assert classify_document_type(
            build_bundle(discharge_summary_data, "eDischargeSummary")
        ) == DocumentType.EDISCHARGE_SUMMARY
        assert classify_document_type(build_bundle(checkup_data, "eCheckup")) == DocumentType.ECHECKUP

    def test_classify_json_data(self):
        data = {"entry": [{"resource": {
            "resourceType": "Composition",
            "type": {"coding": [{"system": "http://loinc.org", "code": "11502-2"}]},
        }}]}
        assert classify_document_type(data) == DocumentType.ECHECKUP

    def test_prefers_loinc_coding(self):
        data = {"entry": [{"resource": {
            "resourceType": "Composition",
            "type": {"coding": [
                {"system": "http://example.org/local", "code": "REF"},
                {"system": "http://loinc.org", "code": "18842-5"},
            ]},
        }}]}
        assert classify_document_type(data) == DocumentType.EDISCHARGE_SUMMARY

    @pytest.mark.parametrize("data", [
        None,
        {},
        {"entry": []},
        {"entry": [{"resource": {"resourceType": "Patient"}}]},
        {"entry": [{"resource": {"resourceType": "Composition", "type": {"coding": []}}}]},
        {"entry": [{"resource": {"resourceType": "Composition", "type": {"coding": [{"code": "00000-0"}]}}}]},
    ])
    def test_unknown(self, data):
        assert classify_document_type(data) == DocumentType.UNKNOWN
