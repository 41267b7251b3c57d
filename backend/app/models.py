from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


VerdictName = Literal["show", "suppress"]


class ConsentSessionRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class BannerContent(BaseModel):
    text: str
    ok_button: str
    view_button: str
    policy_link: str


class PageLoadResponse(BaseModel):
    session_id: str
    verdict: VerdictName
    show_banner: bool
    renewed: bool = False
    banner: Optional[BannerContent] = None


class ConsentRecordOut(BaseModel):
    accepted: bool
    date: datetime
    version: str


class ConsentStatus(BaseModel):
    session_id: str
    has_consented: bool
    policy_version: str
    frequent_visitor: bool = False
    record: Optional[ConsentRecordOut] = None
    visits: List[datetime] = Field(default_factory=list)
