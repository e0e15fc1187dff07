"""JP-CLINS v1.11.0 document to FHIR R4 Bundle converter."""
