"""
Conversation states and the typed context each state carries.

Contexts are persisted as JSON with a `kind` tag. When a session is loaded,
the stored bag is only honored if its kind matches what the current state
expects; anything else reads as "no context".
"""

from dataclasses import dataclass, field, asdict, fields
from enum import Enum
from typing import Optional, Union


class ConversationState(str, Enum):
    WELCOME = "WELCOME"
    AWAITING_PHOTO = "AWAITING_PHOTO"
    AWAITING_TRYON_PHOTO = "AWAITING_TRYON_PHOTO"
    AWAITING_BUDGET = "AWAITING_BUDGET"
    AWAITING_CLOTHING_CHOICE = "AWAITING_CLOTHING_CHOICE"
    SHOWING_TRYON_RESULT = "SHOWING_TRYON_RESULT"
    SHOWING_PRODUCTS = "SHOWING_PRODUCTS"
    ENDED = "ENDED"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ConversationState"]:
        """Return the enum member for a stored value, or None if unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


INITIAL_STATE = ConversationState.WELCOME


# ── Context variants ─────────────────────────────────────────────────


@dataclass(frozen=True)
class AwaitingBudgetContext:
    analyzed_image_ref: str
    recommended_colors: list[str] = field(default_factory=list)
    kind: str = "awaiting_budget"


@dataclass(frozen=True)
class AwaitingClothingChoiceContext:
    body_image_ref: str
    kind: str = "awaiting_clothing_choice"


@dataclass(frozen=True)
class ShowingTryOnResultContext:
    body_image_ref: str
    garment_description: str
    result_image_ref: Optional[str] = None
    kind: str = "showing_tryon_result"


@dataclass(frozen=True)
class ShowingProductsContext:
    budget: str
    products: list[dict] = field(default_factory=list)
    kind: str = "showing_products"


StateContext = Union[
    AwaitingBudgetContext,
    AwaitingClothingChoiceContext,
    ShowingTryOnResultContext,
    ShowingProductsContext,
]

# Which variant each state reads. States not listed carry no context.
CONTEXT_TYPES: dict[ConversationState, type] = {
    ConversationState.AWAITING_BUDGET: AwaitingBudgetContext,
    ConversationState.AWAITING_CLOTHING_CHOICE: AwaitingClothingChoiceContext,
    ConversationState.SHOWING_TRYON_RESULT: ShowingTryOnResultContext,
    ConversationState.SHOWING_PRODUCTS: ShowingProductsContext,
}


def dump_context(ctx: StateContext) -> dict:
    return asdict(ctx)


def load_context(state: Optional[ConversationState], raw: Optional[dict]) -> Optional[StateContext]:
    """Build the typed context for `state` from a stored bag.

    Returns None when the state expects no context, when the bag was written
    by a different state, or when required fields are missing.
    """
    if state is None or not raw:
        return None
    ctx_type = CONTEXT_TYPES.get(state)
    if ctx_type is None:
        return None

    expected_kind = ctx_type.__dataclass_fields__["kind"].default
    if raw.get("kind") != expected_kind:
        return None

    known = {f.name for f in fields(ctx_type)}
    values = {k: v for k, v in raw.items() if k in known}
    try:
        return ctx_type(**values)
    except TypeError:
        return None
