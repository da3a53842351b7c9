"""Member Pydantic schemas: the public author card attached to messages."""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models speak camelCase; Python code uses snake_case names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MemberOut(CamelModel):
    """Public member representation embedded in chat payloads."""
    id: str
    display_name: str
    gamertag: str
    is_admin: bool = False
    profile_image_url: Optional[str] = None
