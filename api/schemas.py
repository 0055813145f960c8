# api/schemas.py

from typing import List, Optional

from pydantic import BaseModel, Field


class FragmentRequest(BaseModel):
    text: str
    language_tag: str = "rust"
    origin: str = ""
    context: List[str] = Field(default_factory=list)


class BatchRequest(BaseModel):
    fragments: List[FragmentRequest]


class TokenSchema(BaseModel):
    start: int
    end: int
    kind: str
    text: str
    css_class: str = ""
    type: Optional[str] = None
    confidence: Optional[str] = None
    docs: Optional[str] = None


class DiagnosticSchema(BaseModel):
    stage: str
    reason: str
    detail: str = ""


class StreamResponse(BaseModel):
    origin: str
    language_tag: str
    degraded: bool
    tokens: List[TokenSchema]
    diagnostics: List[DiagnosticSchema]


class CacheStats(BaseModel):
    hits: int
    misses: int
    size: int


class HealthResponse(BaseModel):
    status: str
    enabled: bool
    cache: CacheStats
