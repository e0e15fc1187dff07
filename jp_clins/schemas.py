from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional, Union
from datetime import datetime, timezone


class CamelModel(BaseModel):
    """Input models accept the camelCase JSON names and reject unknown fields"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


# ============================================================================
# INPUT DOCUMENT
# ============================================================================

class CodingInput(CamelModel):
    """Single coding: system URI, code and display"""
    system: Optional[str] = None
    code: Optional[str] = None
    display: Optional[str] = None


class CodeableConceptInput(CamelModel):
    """Ordered codings plus optional free text"""
    coding: List[CodingInput] = Field(default_factory=list)
    text: Optional[str] = None


class IdentifierInput(CamelModel):
    system: Optional[str] = None
    value: Optional[str] = None


class ReferenceInput(CamelModel):
    """
    Reference to another resource.

    Accepts either a plain ``"ResourceType/id"`` string or an object with
    reference, display and an inline identifier.
    """
    reference: Optional[str] = None
    display: Optional[str] = None
    identifier: Optional[IdentifierInput] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"reference": data}
        return data


class SectionEntryInput(CamelModel):
    """Clinical item carried by a section (one supporting resource each)"""
    code: Optional[CodeableConceptInput] = None
    value: Optional[Union[float, str]] = None
    unit: Optional[str] = None
    text: Optional[str] = None


class SectionInput(CamelModel):
    """Document section: title, code, narrative and optional clinical items"""
    title: Optional[str] = None
    code: Optional[CodeableConceptInput] = None
    text: Optional[str] = None
    entries: List[SectionEntryInput] = Field(default_factory=list)


class ContactInput(CamelModel):
    """Custodian contact details"""
    postal_code: Optional[str] = None
    phone: Optional[str] = None


class ClinicalDocument(CamelModel):
    """
    Input payload for all three document types.

    Requiredness of references, sections and status is checked by the
    transformer so that every problem is reported at once.
    """
    patient_reference: Optional[ReferenceInput] = None
    author_reference: Optional[ReferenceInput] = None
    custodian_reference: Optional[ReferenceInput] = None
    encounter: Optional[ReferenceInput] = None
    sections: List[SectionInput] = Field(default_factory=list)
    document_status: Optional[str] = None
    created_at: Optional[datetime] = None
    custodian_contact: Optional[ContactInput] = None


# ============================================================================
# API RESPONSES
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response"""
    status: str


class ApiResponse(BaseModel):
    """Envelope for JSON responses from the conversion API"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    data: Optional[Any] = None
    error_message: Optional[str] = None
    validation_errors: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ServiceHealth(BaseModel):
    """Conversion service health payload"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str
    service: str
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CapabilitiesResponse(BaseModel):
    """What the conversion service supports"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    service: str
    version: str
    supported_formats: List[str]
    supported_document_types: List[str]
    compliance: str
    fhir_version: str
