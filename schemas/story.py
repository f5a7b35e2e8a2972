from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class Character(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    visual_description: str = Field(..., alias="visualDescription")


class Scene(BaseModel):
    """One illustrated page of the finished story."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    page_number: int = Field(..., alias="pageNumber", ge=1)
    narration: str
    image_prompt: str = Field(..., alias="imagePrompt")
    image_url: Optional[str] = Field(None, alias="imageUrl")


class Story(BaseModel):
    """Terminal output of one pipeline run."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str
    character: Character
    scenes: List[Scene] = Field(..., min_length=1)
    diagnostics: List[str] = Field(default_factory=list, description="Non-fatal notes such as parse_degraded")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
