import hashlib
import json
import logging
from datetime import datetime
from typing import Optional, Union

from shared.utils.blob_storage import LocalBlobStorage
from ...core.time_utils import iso

logger = logging.getLogger(__name__)


def compute_document_hash(content: Union[bytes, str]) -> str:
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def signature_fingerprint(
    document_id,
    signer_id,
    full_name: str,
    email: str,
    document_hash: Optional[str],
    timestamp: datetime,
) -> str:
    """SHA-256 over the canonical JSON form of the signing event."""
    payload = json.dumps(
        {
            "document_id": str(document_id),
            "signer_id": str(signer_id),
            "full_name": full_name,
            "email": email,
            "document_hash": document_hash or "",
            "timestamp": iso(timestamp),
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return compute_document_hash(payload)


def verify_document_hash(storage: LocalBlobStorage, url: Optional[str], expected_hash: Optional[str]) -> bool:
    """Recompute the stored artifact's hash. Any failure to read counts as a mismatch."""
    if not url or not expected_hash:
        return False
    try:
        content = storage.read(url)
    except Exception:
        logger.warning("Could not read document %s for verification", url, exc_info=True)
        return False
    return compute_document_hash(content) == expected_hash
