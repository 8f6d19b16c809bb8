from datetime import datetime
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class ImageOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    original_name: str
    original_url: str
    processed_url: str
    created_at: datetime

class DownloadTarget(BaseModel):
    url: str
    filename: str

class PurgeReport(BaseModel):
    purged: int
    remaining: int

def image_payload(row) -> dict:
    return ImageOut.model_validate(row).model_dump(mode="json", by_alias=True)
