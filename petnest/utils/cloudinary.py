import cloudinary
import cloudinary.utils
from typing import Optional
from petnest import config

cloudinary.config(
    cloud_name=config.CLOUDINARY_CLOUD_NAME,
    api_key=config.CLOUDINARY_API_KEY,
    api_secret=config.CLOUDINARY_API_SECRET,
    secure=True,
)

# Cloudinary stores audio under the "video" resource type
RESOURCE_TYPES = {"image": "image", "voice": "video"}


def get_media_url(content: str, message_type: str) -> Optional[str]:
    """Delivery URL for a media message; ``None`` for text or when unresolvable."""
    resource_type = RESOURCE_TYPES.get(message_type)
    if resource_type is None or not content:
        return None
    if content.startswith("http"):
        return content
    if not cloudinary.config().cloud_name:
        return None

    if resource_type == "image":
        url, _ = cloudinary.utils.cloudinary_url(
            content,
            resource_type="image",
            secure=True,
            width=400,
            crop="scale",
            fetch_format="auto",
            quality="auto",
        )
    else:
        url, _ = cloudinary.utils.cloudinary_url(content, resource_type="video", secure=True)
    return url
