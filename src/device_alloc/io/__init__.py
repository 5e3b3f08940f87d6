"""Wire codec and multi-document decoding."""

from .decoding import DecodedObject, decode_document, decode_documents, decode_file, split_api_version
from .registry import KindManifest, KindRegistry, build_default_registry
from .wire import (
    API_GROUP,
    API_VERSIONS,
    DRIVER_DATA_MAX_SIZE,
    KIND_MANIFESTS,
    MAX_DRIVER_DATA_ENTRIES,
    ResourceSlice,
    allocation_from_wire,
    allocation_to_wire,
    claim_from_wire,
    claim_spec_to_wire,
    claim_template_from_wire,
    device_class_from_wire,
    device_from_wire,
    device_to_wire,
    request_from_wire,
    request_to_wire,
    resource_slice_from_wire,
    status_from_wire,
    status_to_wire,
)

__all__ = [
    "API_GROUP",
    "API_VERSIONS",
    "DRIVER_DATA_MAX_SIZE",
    "DecodedObject",
    "KIND_MANIFESTS",
    "KindManifest",
    "KindRegistry",
    "MAX_DRIVER_DATA_ENTRIES",
    "ResourceSlice",
    "allocation_from_wire",
    "allocation_to_wire",
    "build_default_registry",
    "claim_from_wire",
    "claim_spec_to_wire",
    "claim_template_from_wire",
    "decode_document",
    "decode_documents",
    "decode_file",
    "device_class_from_wire",
    "device_from_wire",
    "device_to_wire",
    "request_from_wire",
    "request_to_wire",
    "resource_slice_from_wire",
    "split_api_version",
    "status_from_wire",
    "status_to_wire",
]
