"""
Conversation state machine.

Each state has one handler:

    handler(event, deps) -> Transition

A handler looks at the inbound event, the user and the typed context of the
current state, calls capability providers when the state needs them, and
describes the outcome. It never touches the database: the engine applies the
Transition (session update, user fields, usage counters, transcript) in one
transaction and sends the reply afterwards.

Provider failures are answered here with an apology and a retry prompt, and
the session stays where it was with its context untouched.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..core.errors import AnalysisError, CompositionError, MediaError, SearchError
from ..models.user import User
from ..services.dispatcher import MessageDispatcher
from ..services.media import MediaStore
from ..services.shopping import BUDGET_RANGES, ProductSearch, build_query
from ..services.tryon import GarmentCompositor
from ..services.vision import VisionAnalyzer
from . import messages
from .quota import COLOR_ANALYSIS, VIRTUAL_TRYON, QuotaTracker
from .states import (
    AwaitingBudgetContext,
    AwaitingClothingChoiceContext,
    ConversationState,
    ShowingProductsContext,
    ShowingTryOnResultContext,
    StateContext,
)

logger = logging.getLogger(__name__)

S = ConversationState


# ── Types ────────────────────────────────────────────────────────────


@dataclass
class InboundEvent:
    from_address: str
    text: str = ""
    media_ref: Optional[str] = None
    status_tag: Optional[str] = None

    @property
    def choice(self) -> str:
        return (self.text or "").strip()

    @property
    def has_content(self) -> bool:
        return bool(self.choice or self.media_ref)


@dataclass
class Reply:
    text: str
    media_url: Optional[str] = None


class ContextChange(str, Enum):
    KEEP = "keep"
    CLEAR = "clear"
    REPLACE = "replace"


@dataclass
class Transition:
    next_state: ConversationState
    reply: Reply
    context_change: ContextChange = ContextChange.KEEP
    context: Optional[StateContext] = None
    user_updates: dict = field(default_factory=dict)
    usage: list[str] = field(default_factory=list)
    new_generation: bool = False

    @classmethod
    def stay(cls, state: ConversationState, text: str) -> "Transition":
        """Reprompt or retry: same state, context untouched."""
        return cls(next_state=state, reply=Reply(text))

    @classmethod
    def move(
        cls,
        state: ConversationState,
        text: str,
        context: Optional[StateContext] = None,
        media_url: Optional[str] = None,
        **kwargs,
    ) -> "Transition":
        """Enter a new state with a fresh context (or none)."""
        return cls(
            next_state=state,
            reply=Reply(text, media_url),
            context_change=ContextChange.REPLACE if context is not None else ContextChange.CLEAR,
            context=context,
            **kwargs,
        )


@dataclass
class Providers:
    vision: VisionAnalyzer
    shopping: ProductSearch
    tryon: GarmentCompositor
    media: MediaStore
    dispatcher: MessageDispatcher

    @classmethod
    def default(cls) -> "Providers":
        return cls(
            vision=VisionAnalyzer(),
            shopping=ProductSearch(),
            tryon=GarmentCompositor(),
            media=MediaStore(),
            dispatcher=MessageDispatcher(),
        )


@dataclass
class TurnDeps:
    user: User
    context: Optional[StateContext]
    providers: Providers
    quota: QuotaTracker


Handler = Callable[[InboundEvent, TurnDeps], Awaitable[Transition]]


def _to_menu(text: str = messages.WELCOME_MESSAGE) -> Transition:
    return Transition.move(S.WELCOME, text)


def _quota_blocked(feature: str) -> Transition:
    # WELCOME carries no context, so a stored body photo is dropped here.
    # TODO: keep the body photo on the user profile so an upgraded user can skip re-uploading.
    return _to_menu(messages.upgrade_prompt(feature))


# ── Handlers ─────────────────────────────────────────────────────────


async def on_welcome(event: InboundEvent, deps: TurnDeps) -> Transition:
    choice = event.choice
    if choice == "1":
        return Transition.move(S.AWAITING_PHOTO, messages.PHOTO_PROMPT)
    if choice == "2":
        return Transition.move(S.AWAITING_TRYON_PHOTO, messages.TRYON_PHOTO_PROMPT)
    if choice == "3":
        return Transition.move(S.ENDED, messages.FAREWELL)
    return Transition.stay(S.WELCOME, messages.WELCOME_MESSAGE)


async def on_awaiting_photo(event: InboundEvent, deps: TurnDeps) -> Transition:
    if not event.media_ref:
        return Transition.stay(S.AWAITING_PHOTO, messages.PHOTO_REPROMPT)

    if not deps.quota.check(deps.user, COLOR_ANALYSIS):
        return _quota_blocked(COLOR_ANALYSIS)

    try:
        image = await deps.providers.media.fetch(event.media_ref)
        analysis = await deps.providers.vision.analyze(image)
    except (MediaError, AnalysisError) as e:
        logger.warning("Color analysis failed for user %s: %s", deps.user.id, e)
        return Transition.stay(S.AWAITING_PHOTO, messages.PHOTO_RETRY)

    return Transition.move(
        S.AWAITING_BUDGET,
        messages.analysis_result(analysis),
        context=AwaitingBudgetContext(
            analyzed_image_ref=event.media_ref,
            recommended_colors=list(analysis.recommended_colors),
        ),
        user_updates={"skin_tone": analysis.tone, "undertone": analysis.undertone},
        usage=[COLOR_ANALYSIS],
    )


async def on_awaiting_tryon_photo(event: InboundEvent, deps: TurnDeps) -> Transition:
    if not event.media_ref:
        return Transition.stay(S.AWAITING_TRYON_PHOTO, messages.TRYON_PHOTO_REPROMPT)
    return Transition.move(
        S.AWAITING_CLOTHING_CHOICE,
        messages.CLOTHING_PROMPT,
        context=AwaitingClothingChoiceContext(body_image_ref=event.media_ref),
    )


async def on_awaiting_budget(event: InboundEvent, deps: TurnDeps) -> Transition:
    choice = event.choice
    if choice == "4":
        return _to_menu()

    budget = BUDGET_RANGES.get(choice)
    if budget is None:
        return Transition.stay(S.AWAITING_BUDGET, messages.BUDGET_REPROMPT)

    if not deps.user.skin_tone:
        return Transition.stay(S.AWAITING_BUDGET, messages.SKIN_TONE_MISSING)

    colors = deps.context.recommended_colors if deps.context else []
    query = build_query(colors, deps.user.skin_tone)
    try:
        products = await deps.providers.shopping.search(query, budget)
    except SearchError as e:
        logger.warning("Product search failed for user %s: %s", deps.user.id, e)
        return _to_menu(messages.SEARCH_FAILED)

    if not products:
        return Transition.stay(S.AWAITING_BUDGET, messages.NO_PRODUCTS)

    return Transition.move(
        S.SHOWING_PRODUCTS,
        messages.product_list(products),
        context=ShowingProductsContext(budget=budget, products=[p.to_dict() for p in products]),
    )


async def on_awaiting_clothing_choice(event: InboundEvent, deps: TurnDeps) -> Transition:
    ctx = deps.context
    if ctx is None or not ctx.body_image_ref:
        return Transition.move(S.AWAITING_TRYON_PHOTO, messages.TRYON_PHOTO_MISSING)

    garment = event.choice
    if not garment:
        return Transition.stay(S.AWAITING_CLOTHING_CHOICE, messages.CLOTHING_REPROMPT)

    if not deps.quota.check(deps.user, VIRTUAL_TRYON):
        return _quota_blocked(VIRTUAL_TRYON)

    media = deps.providers.media
    try:
        body_image = await media.fetch(ctx.body_image_ref)
        result = await deps.providers.tryon.compose(body_image, garment)
        result_url = await media.publish(result, deps.user.id)
    except (MediaError, CompositionError) as e:
        logger.warning("Virtual try-on failed for user %s: %s", deps.user.id, e)
        return Transition.stay(S.AWAITING_CLOTHING_CHOICE, messages.CLOTHING_RETRY)

    return Transition.move(
        S.SHOWING_TRYON_RESULT,
        messages.TRYON_RESULT,
        context=ShowingTryOnResultContext(
            body_image_ref=ctx.body_image_ref,
            garment_description=garment,
            result_image_ref=result_url,
        ),
        media_url=result_url,
        usage=[VIRTUAL_TRYON],
    )


async def on_showing_tryon_result(event: InboundEvent, deps: TurnDeps) -> Transition:
    choice = event.choice
    if choice == "1":
        if deps.context is None:
            return Transition.move(S.AWAITING_TRYON_PHOTO, messages.TRYON_PHOTO_MISSING)
        return Transition.move(
            S.AWAITING_CLOTHING_CHOICE,
            messages.CLOTHING_AGAIN,
            context=AwaitingClothingChoiceContext(body_image_ref=deps.context.body_image_ref),
        )
    if choice == "2":
        return _to_menu()
    return Transition.stay(S.SHOWING_TRYON_RESULT, messages.TRYON_RESULT_REPROMPT)


async def on_showing_products(event: InboundEvent, deps: TurnDeps) -> Transition:
    if event.choice == "3":
        return _to_menu()
    return Transition.stay(S.SHOWING_PRODUCTS, messages.PRODUCTS_REPROMPT)


def restart() -> Transition:
    """Fresh conversation: back to the menu under a new generation."""
    return Transition.move(S.WELCOME, messages.WELCOME_MESSAGE, new_generation=True)


async def on_ended(event: InboundEvent, deps: TurnDeps) -> Transition:
    # Whatever was sent only wakes the session up; it is not read as a choice
    return restart()


HANDLERS: dict[ConversationState, Handler] = {
    S.WELCOME: on_welcome,
    S.AWAITING_PHOTO: on_awaiting_photo,
    S.AWAITING_TRYON_PHOTO: on_awaiting_tryon_photo,
    S.AWAITING_BUDGET: on_awaiting_budget,
    S.AWAITING_CLOTHING_CHOICE: on_awaiting_clothing_choice,
    S.SHOWING_TRYON_RESULT: on_showing_tryon_result,
    S.SHOWING_PRODUCTS: on_showing_products,
    S.ENDED: on_ended,
}


async def handle(
    state: Optional[ConversationState],
    event: InboundEvent,
    deps: TurnDeps,
) -> Transition:
    """Route an event to the handler for `state`. Unknown states restart."""
    handler = HANDLERS.get(state) if state is not None else None
    if handler is None:
        logger.warning("Unrecognized session state for user %s; restarting", deps.user.id)
        return restart()
    return await handler(event, deps)
