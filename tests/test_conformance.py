"""
Bundle Conformance Tests

JP-CLINS document Bundle rules and the R4 structural re-parse.
"""
import pytest

from jp_clins.fhir.bundler import SequentialIdGenerator
from jp_clins.fhir.conformance import check_document_bundle, check_r4_structure
from jp_clins.fhir.converter import transform_document
from jp_clins.fhir.resources import Bundle


def build_bundle(data, document_type="eReferral"):
    result = transform_document(
        data, document_type, id_generator=SequentialIdGenerator(), base_url="http://example.org/fhir"
    )
    assert result.success, result.errors
    return result.bundle


def rebuild(bundle, entries, **overrides):
    fields = {
        "id": bundle.id,
        "meta": bundle.meta,
        "identifier": bundle.identifier,
        "type": bundle.type,
        "timestamp": bundle.timestamp,
        "entry": entries,
    }
    fields.update(overrides)
    return Bundle(**fields)


# ============================================================================
# JP-CLINS Bundle Rules
# ============================================================================

class TestDocumentBundleRules:
    """Test JP-CLINS document Bundle checks."""

    def test_converted_bundles_conform(self, ereferral_data, discharge_summary_data, checkup_data):
        assert check_document_bundle(build_bundle(ereferral_data)) == []
        assert check_document_bundle(build_bundle(discharge_summary_data, "eDischargeSummary")) == []
        assert check_document_bundle(build_bundle(checkup_data, "eCheckup")) == []

    def test_composition_not_first(self, ereferral_data):
        bundle = build_bundle(ereferral_data)
        entries = list(bundle.entry)
        entries[0], entries[1] = entries[1], entries[0]

        problems = check_document_bundle(rebuild(bundle, entries))
        assert "First entry in document bundle must be a Composition resource" in problems

    def test_dangling_section_reference(self, ereferral_data):
        bundle = build_bundle(ereferral_data)
        entries = [e for e in bundle.entry if e.resource.resource_type != "Observation"]

        problems = check_document_bundle(rebuild(bundle, entries))
        assert len(problems) == 1
        assert "Observation/observation-000004" in problems[0]
        assert "not in the Bundle" in problems[0]

    def test_missing_required_resource(self, ereferral_data):
        bundle = build_bundle(ereferral_data)
        entries = [e for e in bundle.entry if e.resource.resource_type != "Practitioner"]

        problems = check_document_bundle(rebuild(bundle, entries))
        assert "Document bundle must contain a Practitioner resource" in problems

    def test_wrong_type_and_missing_profile(self, ereferral_data):
        bundle = build_bundle(ereferral_data)

        problems = check_document_bundle(rebuild(bundle, list(bundle.entry), type="collection", meta=None))
        assert "Bundle type must be 'document' for JP-CLINS documents" in problems
        assert "Bundle must declare a JP-CLINS profile in meta.profile" in problems

    def test_empty_bundle(self, ereferral_data):
        bundle = build_bundle(ereferral_data)

        problems = check_document_bundle(rebuild(bundle, []))
        assert "Bundle must contain at least one entry" in problems

    def test_duplicate_composition(self, ereferral_data):
        bundle = build_bundle(ereferral_data)
        entries = list(bundle.entry) + [bundle.entry[0]]

        problems = check_document_bundle(rebuild(bundle, entries))
        assert any("exactly one Composition, found 2" in p for p in problems)

    def test_checks_do_not_modify_bundle(self, ereferral_data):
        bundle = build_bundle(ereferral_data)
        before = bundle.to_dict()
        check_document_bundle(bundle)
        assert bundle.to_dict() == before


# ============================================================================
# R4 Structure
# ============================================================================

class TestR4Structure:
    """Test structural re-parse with the fhir.resources R4B models."""

    @pytest.fixture(autouse=True)
    def require_fhir_resources(self):
        pytest.importorskip("fhir.resources.R4B.bundle")

    def test_checkup_bundle_is_structurally_valid(self, checkup_data):
        assert check_r4_structure(build_bundle(checkup_data, "eCheckup")) == []

    def test_referral_request_not_checked(self, ereferral_data):
        messages = check_r4_structure(build_bundle(ereferral_data))

        assert any(m.startswith("ReferralRequest/referralrequest-000001: not checked") for m in messages)

    def test_invalid_timestamp_reported(self, checkup_data):
        bundle = build_bundle(checkup_data, "eCheckup")
        broken = rebuild(bundle, list(bundle.entry), timestamp="not-a-timestamp")

        assert check_r4_structure(broken) != []

    def test_blank_section_title_not_reported(self, checkup_data):
        checkup_data["sections"][0]["title"] = ""

        assert check_r4_structure(build_bundle(checkup_data, "eCheckup")) == []
