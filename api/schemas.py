"""
Request bodies for the HTTP API.

Bodies arrive as camelCase JSON; the models accept either camelCase or
snake_case and expose snake_case attributes.
"""
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from assistant.intent import IntentAction
from assistant.llm import INTENT_ENTITIES, INTENT_VERBS


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- projection ----------

class ModelAsset(CamelModel):
    current_value: float
    annual_growth_rate: Optional[float] = None


class ModelLiability(CamelModel):
    current_balance: float
    interest_rate_apr: Optional[float] = None
    minimum_payment: Optional[float] = None


class RunModelRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)

    assets: List[ModelAsset] = Field(default_factory=list)
    liabilities: List[ModelLiability] = Field(default_factory=list)
    monthly_income: float = Field(0, ge=0)
    monthly_expenses: float = Field(0, ge=0)
    current_age: int = Field(ge=18, le=100)
    retirement_age: Optional[int] = Field(None, ge=18, le=120)
    start_year: Optional[int] = Field(None, ge=1900, le=2300)
    assumptions: Optional[Dict[str, float]] = None


# ---------- intents ----------

class IntentRequest(CamelModel):
    message: str
    chat_id: Optional[str] = None


class IntentActionBody(CamelModel):
    id: str = ""
    verb: Literal[INTENT_VERBS]
    entity: Literal[INTENT_ENTITIES]
    target: str = ""
    amount: Optional[float] = None
    currency: Optional[str] = None
    raw: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_action(self) -> IntentAction:
        return IntentAction(
            id=self.id,
            verb=self.verb,
            entity=self.entity,
            target=self.target,
            amount=self.amount,
            currency=self.currency,
            raw=self.raw,
            # planner metadata keys arrive camelCase from the UI
            metadata={_snake_meta(k): v for k, v in self.metadata.items()},
        )


def _snake_meta(key: str) -> str:
    return {
        "plannerScenarioType": "planner_scenario_type",
        "plannerField": "planner_field",
        "plannerStringValue": "planner_string_value",
    }.get(key, key)


class IntentPreviewRequest(CamelModel):
    actions: List[IntentActionBody]


class ActionsRequest(CamelModel):
    intent_id: str = Field(min_length=1)
    chat_id: Optional[str] = None
    user_id: Optional[str] = None
    actions: List[IntentActionBody] = Field(min_length=1)
    apply: bool = False


# ---------- planner / cpf / chat ----------

class ApplyScenarioRequest(CamelModel):
    scenario_id: str = Field(min_length=1)


class CPFContributionRequest(CamelModel):
    monthly_salary: float = Field(ge=0)
    age: int = Field(32, ge=0, le=120)
    reference_date: Optional[date] = None


class CPFSalaryRequest(CamelModel):
    amount: float = Field(ge=0)
    input_type: Literal["gross", "net"] = "gross"
    age: int = Field(32, ge=0, le=120)
    reference_date: Optional[date] = None
    # when set, CPF contribution incomes are created or re-priced in the store
    apply: bool = False


class ChatTurn(CamelModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(CamelModel):
    message: str = Field(min_length=1)
    history: List[ChatTurn] = Field(default_factory=list)
    chat_id: Optional[str] = None
    current_age: int = Field(32, ge=18, le=100)
