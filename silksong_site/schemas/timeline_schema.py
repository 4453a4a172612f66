from datetime import datetime

from pydantic import BaseModel


class TimelineEvent(BaseModel):
    id: str
    date: datetime
    title: str
    description: str
    type: str
    source: str
    category: str
