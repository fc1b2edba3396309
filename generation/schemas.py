"""
Response-shape validation for Gemini outputs.

Gemini is asked for JSON, but nothing guarantees the response conforms.
Everything parsed here is validated with pydantic; any violation becomes a
MalformedResponseError for the step that made the call.
"""
import json
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from shared.models import ArticleLink, CamelModel, SEOAnalysis, VisualPrompt

from .errors import MalformedResponseError

T = TypeVar("T")


# =============================================================================
# LLM RESPONSE MODELS
# =============================================================================

class LLMResearchResponse(CamelModel):
    """Expected JSON body of the research call (sources come from grounding)."""
    history: str = Field(..., description="A summary of the topic's history.")
    facts: List[str] = Field(..., description="A list of quirky or little-known facts.")
    misconceptions: List[str] = Field(..., description="A list of common misconceptions or urban myths.")


class LLMArticlePlanResponse(CamelModel):
    """Shape requested from the planning call (used for the responseSchema)."""
    title: str
    hashtags: List[str]
    links: List[ArticleLink]
    visual_prompts: List[VisualPrompt]
    seo_analysis: Optional[SEOAnalysis] = None


# =============================================================================
# JSON EXTRACTION
# =============================================================================

def extract_json_object(text: str) -> str:
    """
    Return the substring from the first '{' to the last '}'.

    Grounded (search tool) responses cannot use JSON mode, so the object
    may be wrapped in prose or code fences.

    Raises:
        MalformedResponseError: If no object delimiters are present.
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise MalformedResponseError("No JSON object found in the AI response.")
    return text[start:end + 1]


def parse_json(text: str, what: str = "response") -> Any:
    """json.loads with MalformedResponseError on failure."""
    if not text or not text.strip():
        raise MalformedResponseError(f"The AI returned an empty {what}.")
    try:
        return json.loads(text.strip())
    except ValueError as e:
        raise MalformedResponseError(f"The AI {what} was not valid JSON: {e}") from e


def validate_model(model: Type[BaseModel], data: Any, what: str = "response") -> Any:
    """Validate parsed data against a pydantic model."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"The AI {what} did not match the expected schema: {e.error_count()} error(s), "
            f"first: {e.errors()[0].get('msg') if e.errors() else 'unknown'}"
        ) from e


def validate_list(item_type: Type[T], data: Any, what: str = "response") -> List[T]:
    """Validate parsed data as a list of item_type."""
    try:
        return TypeAdapter(List[item_type]).validate_python(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"The AI {what} did not match the expected schema: {e.error_count()} error(s)"
        ) from e


# =============================================================================
# GEMINI RESPONSE SCHEMA
# =============================================================================

def to_gemini_schema(json_schema: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Convert a pydantic JSON schema to Gemini's responseSchema format.

    Gemini expects a simplified schema without:
    - $defs (definitions should be inlined)
    - additionalProperties
    - title / default / $schema

    Optional fields (anyOf with null) become the non-null branch with
    nullable=True. Returns None if the schema contains unsupported features.

    See: https://ai.google.dev/gemini-api/docs/structured-output
    """
    defs = json_schema.get("$defs", {})
    unsupported = False

    def simplify(schema: Dict[str, Any]) -> Dict[str, Any]:
        nonlocal unsupported

        if "$ref" in schema:
            ref_path = schema["$ref"]
            if ref_path.startswith("#/$defs/") and ref_path[8:] in defs:
                return simplify(defs[ref_path[8:]])
            unsupported = True
            return {"type": "object"}

        if "allOf" in schema:
            if len(schema["allOf"]) != 1:
                unsupported = True
                return {"type": "object"}
            result = simplify(schema["allOf"][0])
            if "description" in schema:
                result["description"] = schema["description"]
            return result

        if "anyOf" in schema:
            branches = [b for b in schema["anyOf"] if b.get("type") != "null"]
            if len(branches) != 1:
                unsupported = True
                return {"type": "string"}
            result = simplify(branches[0])
            if len(branches) != len(schema["anyOf"]):
                result["nullable"] = True
            if "description" in schema:
                result["description"] = schema["description"]
            return result

        if "additionalProperties" in schema and schema["additionalProperties"] not in (False, None):
            unsupported = True
            return {"type": "object"}

        result: Dict[str, Any] = {}
        for key in ("type", "description", "enum"):
            if key in schema:
                result[key] = schema[key]
        if "properties" in schema:
            result["properties"] = {k: simplify(v) for k, v in schema["properties"].items()}
        if "required" in schema:
            result["required"] = list(schema["required"])
        if "items" in schema:
            result["items"] = simplify(schema["items"])
        return result

    simplified = simplify(json_schema)
    if unsupported:
        return None
    return simplified


def gemini_schema_for(model: Type[BaseModel]) -> Optional[Dict[str, Any]]:
    """responseSchema for a single pydantic model (by API alias)."""
    return to_gemini_schema(model.model_json_schema(by_alias=True))


def gemini_list_schema_for(item_type: Type[BaseModel]) -> Optional[Dict[str, Any]]:
    """responseSchema for a JSON array of item_type."""
    return to_gemini_schema(TypeAdapter(List[item_type]).json_schema(by_alias=True))
