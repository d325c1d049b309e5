"""Document schemas."""

from pydantic import BaseModel


class DownloadUrlResponse(BaseModel):
    download_url: str
