"""
LLM extraction of financial intent actions from a chat message.

The model is asked for a JSON object `{"actions": [...]}` and the reply is
validated with pydantic before anything downstream sees it.
"""
import os
from typing import Any, Dict, List, Literal, Optional

from openai import OpenAI
from pydantic import BaseModel, ConfigDict, Field, field_validator

INTENT_VERBS = ("add-item", "update", "remove-item")
INTENT_ENTITIES = ("asset", "liability", "income", "expense", "property-planner")
PROPERTY_PLANNER_FIELDS = (
    "headline",
    "subheadline",
    "loanAmount",
    "loanTermYears",
    "loanStartMonth",
    "fixedYears",
    "fixedRate",
    "floatingRate",
    "borrowerType",
    "householdIncome",
    "otherDebt",
)

DEFAULT_MODEL = "gpt-4o-mini"


class LLMUnavailableError(RuntimeError):
    pass


class PlannerMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    planner_scenario_type: Optional[str] = Field(None, alias="plannerScenarioType")
    planner_field: Optional[Literal[PROPERTY_PLANNER_FIELDS]] = Field(None, alias="plannerField")
    planner_string_value: Optional[str] = Field(None, alias="plannerStringValue")

    @field_validator("planner_scenario_type")
    @classmethod
    def _lower(cls, v):
        return v.lower() if isinstance(v, str) else v


class IntentLLMAction(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    verb: Literal[INTENT_VERBS]
    entity: Literal[INTENT_ENTITIES]
    target: str = Field(min_length=1)
    amount: Optional[float] = None
    currency: Optional[str] = None
    raw: str = Field(min_length=1)
    metadata: Optional[PlannerMetadata] = None

    @field_validator("currency")
    @classmethod
    def _upper(cls, v):
        return v.upper() if isinstance(v, str) else None


class IntentLLMResponse(BaseModel):
    actions: List[IntentLLMAction] = Field(default_factory=list)


def build_context_aware_prompt(financial_context: str = "") -> str:
    return f"""You convert user chat commands into structured financial plan intent actions using their current financial state as context.

Current Financial State:
{financial_context}

Reply with a JSON object of the form:
{{"actions": [{{"verb": ..., "entity": ..., "target": ..., "amount": number|null, "currency": "ISO"|null, "raw": ..., "metadata": {{...}}|null}}]}}

Rules:
- Supported verbs: "add-item" (create new), "update" (change existing), "remove-item" (delete existing)
- Supported entities: asset, liability, income, expense. Pick the best match.
- Use context to determine if item exists: if exists use "update" or "remove-item", if new use "add-item"
- For updates, calculate the final amount based on user intent and current values:
  * Absolute values: "My house is worth 700k" -> amount: 700000
  * Relative additions: "I added 15k to portfolio" (current: 75k) -> amount: 90000
  * Relative subtractions: "I paid down mortgage by 15k" (current: 350k) -> amount: 335000
  * Complete payoffs: "I paid off completely" -> use "remove-item" with amount: null
- Match user terms to existing items using natural language understanding (e.g., "housing loan" = "mortgage")
- Currency should be 3-letter ISO code when mentioned, otherwise null
- Target is the described account/category name
- Raw is the exact text span that led to the action
- When single message has multiple items, return one action per item
- If nothing actionable found, return an empty actions array
- Property planner entity:
  * Only emit property-planner actions when the user clearly references the mortgage/property planner or a planner scenario.
  * Use entity "property-planner" with metadata.plannerScenarioType of "hdb", "condo", or "landed" (infer from context).
  * metadata.plannerField must be one of: {", ".join(PROPERTY_PLANNER_FIELDS)}.
  * For numeric planner fields store the final number in "amount". For text-based fields set amount to null and place the value in metadata.plannerStringValue (loanStartMonth should be YYYY-MM).
  * "add-item" creates or ensures a planner scenario exists, "update" changes specific fields, and "remove-item" clears the scenario entirely.
"""


def build_user_prompt(message: str) -> str:
    return f'''User request:
"""
{message}
"""

Extract the structured actions using the current financial state context above.'''


def get_client() -> OpenAI:
    if not os.getenv("OPENAI_API_KEY"):
        raise LLMUnavailableError("OPENAI_API_KEY is not set")
    return OpenAI()


def infer_intent_actions(message: str, financial_context: Optional[str] = None) -> List[Dict[str, Any]]:
    client = get_client()
    resp = client.chat.completions.create(
        model=os.getenv("OPENAI_MODEL", DEFAULT_MODEL),
        messages=[
            {"role": "system", "content": build_context_aware_prompt(financial_context or "")},
            {"role": "user", "content": build_user_prompt(message)},
        ],
        response_format={"type": "json_object"},
        temperature=0,
    )
    content = resp.choices[0].message.content or "{}"
    parsed = IntentLLMResponse.model_validate_json(content)
    return [a.model_dump() for a in parsed.actions]
