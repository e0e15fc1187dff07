"""
FHIR Conversion Module

Converts JP-CLINS input documents (eReferral, eDischargeSummary, eCheckup)
into FHIR R4 document Bundles and serializes them as JSON or XML.

Components:
- validators: Japan-specific code and identifier format checks
- resources: Typed FHIR resource model
- mappers: Individual resource mappers (Patient, Condition, etc.)
- bundler: Document Bundle assembler
- converter: Per-document transformers
- serializer: JSON / XML rendering
- conformance: Report-only Bundle checks
"""
from .constants import DocumentType
from .errors import JpClinsError, ValidationFailure, UnsupportedFormatError, SerializationFailure
from .bundler import BundleAssembler, SequentialIdGenerator
from .converter import ConversionResult, DocumentTransformer, get_transformer, transform_document
from .serializer import (
    SerializationResult,
    classify_document_type,
    get_content_type,
    is_valid_format,
    serialize_bundle,
)
from .conformance import check_document_bundle, check_r4_structure

__all__ = [
    "DocumentType",
    "JpClinsError",
    "ValidationFailure",
    "UnsupportedFormatError",
    "SerializationFailure",
    "BundleAssembler",
    "SequentialIdGenerator",
    "ConversionResult",
    "DocumentTransformer",
    "get_transformer",
    "transform_document",
    "SerializationResult",
    "classify_document_type",
    "get_content_type",
    "is_valid_format",
    "serialize_bundle",
    "check_document_bundle",
    "check_r4_structure",
]
