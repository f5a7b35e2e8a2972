from pydantic import BaseModel, Field, field_validator


class Metadata(BaseModel):
    """Produced by the metadata analyzer from both videos, consumed by the script prompt."""
    title: str = Field(..., description="Story title")
    summary: str = Field(..., description="Short synopsis of the narrated plot")
    character_age: str = Field(..., description="Estimated age of the main character")
    character_gender: str = Field(..., description="Gender presentation of the main character")
    character_clothing: str = Field(..., description="Clothing worn in the subject video")
    character_name: str = Field(default="", description="Name given to the hero, if any")

    model_config = {"frozen": True}

    @field_validator("title", "summary", "character_age", "character_gender", "character_clothing")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @property
    def visual_description(self) -> str:
        return f"{self.character_age}, {self.character_gender}, {self.character_clothing}"
