"""
Object key generation for resource files.

Layout inside the bucket: {owner_id}/{random_name}.{ext}
"""
import uuid
from typing import Optional


def resource_object_key(owner_id: str, extension: Optional[str] = None) -> str:
    """
    Key for a newly uploaded resource file, namespaced by owner.

    Args:
        owner_id: Principal uploading the file
        extension: File extension without the dot ("pdf"); omitted if empty

    Returns:
        Object key (without bucket name)
    """
    name = uuid.uuid4().hex
    if extension:
        name = f"{name}.{extension}"
    return f"{owner_id}/{name}"

