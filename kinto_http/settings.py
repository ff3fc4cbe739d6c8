import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Server
    remote: str = Field(default="http://localhost:8888/v1", alias="KINTO_REMOTE")
    bucket: str = Field(default="default", alias="KINTO_BUCKET")

    # Request engine defaults
    timeout: float | None = Field(default=None, alias="KINTO_TIMEOUT")
    retry: int = Field(default=0, ge=0, alias="KINTO_RETRY")
    request_mode: str = Field(default="cors", alias="KINTO_REQUEST_MODE")


global_settings = Settings.model_validate(dict(os.environ))
