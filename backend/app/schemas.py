from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field, StrictStr


class ChatProxyRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", protected_namespaces=())

    contents: List[Any] = Field(..., description="Gemini conversation contents, forwarded verbatim")
    model: Optional[StrictStr] = Field(None, description="Optional Gemini model identifier")
    generationConfig: Optional[Dict[str, Any]] = Field(None, description="Optional Gemini generation config")


class UpstreamRequest(BaseModel):
    contents: List[Any]
    generationConfig: Dict[str, Any]
