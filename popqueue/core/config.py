import os
from pydantic import BaseModel, Field, ValidationError
from typing import Optional
from .errors import ConfigurationError


class QueueConfig(BaseModel):
    access_key_id: str = Field(min_length=1)
    secret_access_key: str = Field(min_length=1)
    region: str = Field(min_length=1)
    queue_url: Optional[str] = None
    endpoint_url: Optional[str] = None
    timeout: float = 60.0

    @classmethod
    def load(cls, **values) -> "QueueConfig":
        try:
            return cls(**values)
        except ValidationError as e:
            missing = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise ConfigurationError(f"invalid queue configuration: {missing}") from e

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """Reads AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION,
        QUEUE_URL and SQS_ENDPOINT_URL."""
        return cls.load(
            access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", ""),
            secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", ""),
            region=os.environ.get("AWS_REGION", ""),
            queue_url=os.environ.get("QUEUE_URL") or None,
            endpoint_url=os.environ.get("SQS_ENDPOINT_URL") or None,
        )
