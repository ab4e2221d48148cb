from enum import Enum

from pydantic import BaseModel, Field


class Platform(str, Enum):
    IOS = "ios"
    ANDROID = "android"


class AppInfo(BaseModel):
    """Parsed package manifest, as produced by the upload parser."""

    name: str = Field(..., min_length=1, max_length=255)
    platform: Platform
    bundle_id: str = Field(..., min_length=1, max_length=255)
    android_version_name: str = ""
    android_version_code: int = 0
    ios_short_version: str = ""
    ios_bundle_version: str = ""
    size: int = Field(0, ge=0)  # bytes

    def full_version(self) -> str:
        if self.platform == Platform.IOS:
            return f"{self.ios_short_version}({self.ios_bundle_version})"
        return f"{self.android_version_name}({self.android_version_code})"
