"""
Upload Wire Protocol

Design Decision: Transport Split
================================

Two very different channels are involved in every upload:

1. The RPC endpoint - a batched JSON API. One POST carries a list of
   operations and returns a list of results in the same order.
2. The storage endpoint - plain HTTP PUTs of raw bytes to pre-signed URLs.

This module describes the first channel (operation dicts and the shape of
their responses) and the values that flow through the second
(part descriptors and the fingerprints they produce).

Operation Format:
```
{"action": "create", "entity_type": "FileComponent", "entity_data": {...}}
{"action": "get_upload_metadata", "file_name": "a.mov", "file_size": 123,
 "component_id": "...", "parts": 4}
{"action": "complete_multipart_upload", "upload_id": "...",
 "component_id": "...", "parts": [{"ETag": "...", "PartNumber": 1}, ...]}
{"action": "delete", "entity_type": "FileComponent", "entity_key": ["..."]}
```
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

# Entity types understood by the RPC endpoint
COMPONENT_ENTITY_TYPE = 'FileComponent'
LOCATION_ENTITY_TYPE = 'ComponentLocation'

# Built-in server storage location
SERVER_LOCATION_ID = '3a372bde-b914-11e1-b1d2-f23c91df25eb'

# Published after a component lands in a location
COMPONENT_ADDED_TOPIC = 'ftrack.location.component-added'

# Response header carrying the part fingerprint
FINGERPRINT_HEADER = 'ETag'


class UploadStrategy(Enum):
    """How the payload travels to storage."""
    SINGLE = "SINGLE"
    MULTIPART = "MULTIPART"


# === Internal values ===

@dataclass(frozen=True)
class PartDescriptor:
    """One part to send: where, and which slot of the payload."""
    part_number: int  # 1-based
    signed_url: str


@dataclass(frozen=True)
class PartResult:
    """A committed part."""
    part_number: int
    fingerprint: str  # ETag, quotes removed

    def to_manifest_entry(self) -> Dict[str, Any]:
        return {'ETag': self.fingerprint, 'PartNumber': self.part_number}


@dataclass
class Event:
    """Notification published once a component is available."""
    topic: str
    data: Dict[str, Any] = field(default_factory=dict)


# === RPC responses ===

class SignedPart(BaseModel):
    """Pre-signed URL for one part."""
    signed_url: str
    part_number: int = Field(ge=1)


class SingleUploadMetadata(BaseModel):
    """Coordinates for a one-shot PUT."""
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    component_id: Optional[str] = None


class MultipartUploadMetadata(BaseModel):
    """Coordinates for a multipart upload session."""
    urls: List[SignedPart]
    upload_id: str
    component_id: Optional[str] = None

    def to_descriptors(self) -> List[PartDescriptor]:
        return [
            PartDescriptor(part_number=part.part_number, signed_url=part.signed_url)
            for part in self.urls
        ]


UploadMetadata = Union[SingleUploadMetadata, MultipartUploadMetadata]


def parse_upload_metadata(data: Dict[str, Any]) -> UploadMetadata:
    """Pick the metadata model based on the keys the server sent."""
    if 'urls' in data:
        return MultipartUploadMetadata.model_validate(data)
    return SingleUploadMetadata.model_validate(data)


# === Operation builders ===

def create_operation(entity_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Return create operation for *entity_type* with *data*."""
    return {'action': 'create', 'entity_type': entity_type, 'entity_data': data}


def delete_operation(entity_type: str, keys: List[str]) -> Dict[str, Any]:
    """Return delete operation for *entity_type* identified by *keys*."""
    return {'action': 'delete', 'entity_type': entity_type, 'entity_key': keys}


def get_upload_metadata_operation(file_name: str, file_size: int,
                                  component_id: str,
                                  parts: Optional[int]) -> Dict[str, Any]:
    return {
        'action': 'get_upload_metadata',
        'file_name': file_name,
        'file_size': file_size,
        'component_id': component_id,
        'parts': parts,
    }


def complete_multipart_operation(upload_id: str, component_id: str,
                                 results: List[PartResult]) -> Dict[str, Any]:
    """Commit operation; *results* must already be sorted by part number."""
    return {
        'action': 'complete_multipart_upload',
        'upload_id': upload_id,
        'component_id': component_id,
        'parts': [result.to_manifest_entry() for result in results],
    }


def unquote_fingerprint(value: str) -> str:
    """Strip the double quotes storage wraps around ETags."""
    return value.replace('"', '')
