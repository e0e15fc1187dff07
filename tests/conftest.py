"""
Shared sample documents for the conversion tests.

Fixtures hand out deep copies so a test can mutate its document freely.
"""
import copy

import pytest


LOINC = "http://loinc.org"


def _section(title, code, display, text, entries=None):
    section = {
        "title": title,
        "code": {"coding": [{"system": LOINC, "code": code, "display": display}]},
        "text": text,
    }
    if entries is not None:
        section["entries"] = entries
    return section


# ============================================================================
# Sample Data for Testing
# ============================================================================

SAMPLE_PATIENT_REFERENCE = {
    "reference": "Patient/12345",
    "display": "山田 花子",
    "identifier": {"system": "urn:oid:1.2.392.100495.20.3.51", "value": "12345"},
}

SAMPLE_AUTHOR_REFERENCE = {
    "reference": "Practitioner/dr-tanaka",
    "display": "田中 太郎",
    "identifier": {"system": "urn:oid:1.2.392.100495.20.3.31", "value": "123456"},
}

SAMPLE_CUSTODIAN_REFERENCE = {
    "reference": "Organization/1312345678",
    "display": "東京総合病院",
    "identifier": {"system": "urn:oid:1.2.392.100495.20.3.21", "value": "1312345678"},
}

SAMPLE_EREFERRAL = {
    "patientReference": SAMPLE_PATIENT_REFERENCE,
    "authorReference": SAMPLE_AUTHOR_REFERENCE,
    "custodianReference": SAMPLE_CUSTODIAN_REFERENCE,
    "encounter": "Encounter/enc-001",
    "documentStatus": "final",
    "createdAt": "2024-01-15T10:30:00+09:00",
    "custodianContact": {"postalCode": "1000001", "phone": "03-1234-5678"},
    "sections": [
        _section("主訴", "10154-3", "Chief complaint", "胸痛"),
        _section("紹介目的", "42349-1", "Reason for referral", "精査加療のため"),
        _section("アレルギー", "48765-2", "Allergies", "ペニシリン", entries=[
            {"code": {"text": "ペニシリン"}, "text": "発疹"},
        ]),
        _section("処方", "10160-0", "Medications", "アムロジピン錠5mg 1錠 1日1回", entries=[
            {
                "code": {"coding": [{
                    "system": "urn:oid:1.2.392.100495.20.2.74",
                    "code": "1234AB567C8",
                    "display": "アムロジピン錠5mg",
                }]},
                "value": 1,
                "unit": "錠",
                "text": "1日1回朝食後",
            },
        ]),
        _section("検査結果", "30954-2", "Relevant diagnostic tests", "LDL 165 mg/dL", entries=[
            {
                "code": {"coding": [{
                    "system": "urn:oid:1.2.392.200119.4.504",
                    "code": "3F015000002327101",
                    "display": "LDLコレステロール",
                }]},
                "value": 165,
                "unit": "mg/dL",
            },
        ]),
    ],
}

SAMPLE_DISCHARGE_SUMMARY = {
    "patientReference": SAMPLE_PATIENT_REFERENCE,
    "authorReference": SAMPLE_AUTHOR_REFERENCE,
    "custodianReference": SAMPLE_CUSTODIAN_REFERENCE,
    "encounter": "Encounter/adm-2024-001",
    "documentStatus": "final",
    "createdAt": "2024-02-01T09:00:00+09:00",
    "sections": [
        _section("入院理由", "46241-6", "Hospital admission reason", "急性心筋梗塞"),
        _section("入院経過", "8648-8", "Hospital course", "PCI施行後、経過良好"),
        _section("退院時診断", "11535-2", "Hospital discharge Dx", "急性心筋梗塞", entries=[
            {"code": {"coding": [{
                "system": "http://hl7.org/fhir/sid/icd-10",
                "code": "I21.4",
                "display": "急性心内膜下心筋梗塞",
            }]}},
        ]),
        _section("退院時処方", "10183-2", "Hospital discharge medications", "アスピリン", entries=[
            {
                "code": {"coding": [{
                    "system": "urn:oid:1.2.392.100495.20.2.73",
                    "code": "100795402",
                    "display": "バイアスピリン錠100mg",
                }]},
                "text": "1日1回朝食後",
            },
        ]),
    ],
}

SAMPLE_CHECKUP = {
    "patientReference": "Patient/12345",
    "authorReference": "Practitioner/dr-suzuki",
    "custodianReference": "Organization/2712345678",
    "documentStatus": "final",
    "createdAt": "2024-04-10T14:00:00+09:00",
    "sections": [
        _section("バイタルサイン", "8716-3", "Vital signs", "血圧 128/82 mmHg", entries=[
            {
                "code": {"coding": [{"system": LOINC, "code": "8480-6", "display": "Systolic blood pressure"}]},
                "value": 128,
                "unit": "mm[Hg]",
            },
            {
                "code": {"coding": [{"system": LOINC, "code": "8462-4", "display": "Diastolic blood pressure"}]},
                "value": 82,
                "unit": "mm[Hg]",
            },
        ]),
        _section("身体診察", "29545-1", "Physical findings", "特記事項なし"),
        _section("健診判定", "51847-2", "Assessment and plan", "異常なし"),
    ],
}


@pytest.fixture
def ereferral_data():
    return copy.deepcopy(SAMPLE_EREFERRAL)


@pytest.fixture
def discharge_summary_data():
    return copy.deepcopy(SAMPLE_DISCHARGE_SUMMARY)


@pytest.fixture
def checkup_data():
    return copy.deepcopy(SAMPLE_CHECKUP)
