from datetime import datetime

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    database: str
    workflow_table_version: str
    timestamp: datetime
    environment: str
    version: str
