"""Types for the machine-readable parts of a PR description."""

import json
import re
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError

METADATA_MARKER = "gherrit-meta"
METADATA_RE = re.compile(r'<!--\s*' + METADATA_MARKER + r':\s*(\{.*?\})\s*-->', re.DOTALL)

class StackMetadata(BaseModel):
    """Position of a PR in its stack, read by the post-merge cascade agent."""
    model_config = ConfigDict(populate_by_name=True)

    stable_id: str = Field(alias="stableId")
    parent_stable_id: Optional[str] = Field(default=None, alias="parentStableId")
    child_stable_id: Optional[str] = Field(default=None, alias="childStableId")

def render_metadata(meta: StackMetadata) -> str:
    """Render the hidden HTML comment embedded at the end of a PR body."""
    payload = json.dumps(meta.model_dump(by_alias=True))
    return f"<!-- {METADATA_MARKER}: {payload} -->"

def parse_metadata(body: Optional[str]) -> Optional[StackMetadata]:
    """Find the metadata comment in a PR body. Returns None if absent or malformed."""
    if not body:
        return None
    matches = METADATA_RE.findall(body)
    if not matches:
        return None
    try:
        return StackMetadata.model_validate(json.loads(matches[-1]))
    except (ValueError, ValidationError):
        return None
