"""Domain enumerations for strong typing & validation."""
from enum import Enum

class Platform(str, Enum):
    LINKEDIN = "linkedin"

class PublishStatus(str, Enum):
    NOT_PUBLISHED = "not_published"
    SCHEDULED = "scheduled"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    FAILED = "failed"
