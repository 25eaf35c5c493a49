"""
Pydantic models for activity intake
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from crimelab.models.domain.activity import ActivityType


class ActivityCreate(BaseModel):
    """Activity posted by a browser client (timestamp is assigned server-side)"""
    type: ActivityType
    data: Dict[str, Any] = {}
    session_id: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        data = dict(self.data)
        if self.session_id and 'session_id' not in data:
            data['session_id'] = self.session_id
        return data
