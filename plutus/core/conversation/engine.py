"""
Conversation Engine

Drives one chat through the lending flow:

    Idle -> BrowsingMarkets -> [SelectingAction] -> AwaitingAmount
         -> AwaitingConfirmation -> Idle

plus the wallet-link detour through ConnectingWallet. Every event is
handled while holding the chat's lock, so a chat's events apply strictly
one after another; the chain submission inside a confirmation is the only
step that also waits on other chats (through the submitter's own lock).
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Type

import structlog

from ...config import settings
from ...services.address import is_valid_move_address, normalize_address
from ..errors import (
    ConversationError,
    ErrorKind,
    InvalidStateError,
    NotConnectedError,
    SessionExpiredError,
    StalePayloadError,
    UpstreamError,
    ValidationError,
)
from .events import (
    CancelTransaction,
    ConfirmTransaction,
    Event,
    RequestHelp,
    RequestMarkets,
    RequestMenu,
    RequestWalletInfo,
    RequestWalletLink,
    SelectAction,
    SelectMarket,
    SubmitAmount,
    SubmitWalletAddress,
)
from .models import (
    Action,
    AwaitingAmount,
    AwaitingConfirmation,
    BrowsingMarkets,
    ChatId,
    ConnectingWallet,
    ConversationSession,
    ConversationState,
    Idle,
    Market,
    SelectingAction,
)
from .outcomes import (
    Error,
    Outcome,
    PromptAction,
    PromptAmount,
    PromptWalletAddress,
    ShowConfirmation,
    ShowHelp,
    ShowMarkets,
    ShowMenu,
    ShowWallet,
    Success,
)
from .store import SessionStore

if TYPE_CHECKING:
    from ...providers.base import (
        ChainSubmitter,
        MarketCatalogClient,
        PayloadBuilderClient,
        PositionsClient,
    )


logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


def parse_amount(text: str) -> Decimal:
    """
    Parse user-entered amount text.

    Raises:
        ValidationError: Not a finite, strictly positive decimal number.
    """
    cleaned = (text or "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        amount = None

    # is_finite first: ordering comparisons on NaN raise
    if amount is None or not amount.is_finite() or amount <= 0:
        raise ValidationError(
            "Please enter a valid positive number for the amount.",
            field_name="amount",
            value=cleaned,
        )
    return amount


class ConversationEngine:
    """
    Applies user events to chat sessions and returns presenter outcomes.

    Collaborators are injected so tests can substitute in-memory fakes:

    - catalog: lists lending markets
    - payloads: builds the chain payload for an action
    - submitter: signs and submits a payload, returns the tx hash
    - positions: optional, used by the wallet view
    """

    def __init__(
        self,
        store: SessionStore,
        catalog: MarketCatalogClient,
        payloads: PayloadBuilderClient,
        submitter: ChainSubmitter,
        positions: Optional[PositionsClient] = None,
        wallet_address_min_length: Optional[int] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.payloads = payloads
        self.submitter = submitter
        self.positions = positions
        self.wallet_address_min_length = (
            wallet_address_min_length or settings.wallet_address_min_length
        )

        self._handlers: Dict[
            Type[Any], Callable[[ConversationSession, Any], Awaitable[Outcome]]
        ] = {
            RequestMenu: self._on_request_menu,
            RequestHelp: self._on_request_help,
            RequestWalletLink: self._on_request_wallet_link,
            SubmitWalletAddress: self._on_submit_wallet_address,
            RequestWalletInfo: self._on_request_wallet_info,
            RequestMarkets: self._on_request_markets,
            SelectMarket: self._on_select_market,
            SelectAction: self._on_select_action,
            SubmitAmount: self._on_submit_amount,
            ConfirmTransaction: self._on_confirm_transaction,
            CancelTransaction: self._on_cancel_transaction,
        }

    async def handle(self, chat_id: ChatId, event: Event) -> Outcome:
        """
        Apply one event to a chat.

        Never raises for conversation failures: every error in the taxonomy
        comes back as an Error outcome, with the session left in place or
        reset according to the error.
        """
        with structlog.contextvars.bound_contextvars(chat_id=str(chat_id)):
            try:
                async with self.store.exclusive(chat_id) as session:
                    return await self._apply(session, event)
            except SessionExpiredError as e:
                logger.info(f"Chat {chat_id}: session expired, starting over")
                return self._error_outcome(e)

    async def _apply(self, session: ConversationSession, event: Event) -> Outcome:
        from_state = session.state
        event_name = getattr(event, "name", type(event).__name__)
        handler = self._handlers.get(type(event))

        try:
            if handler is None:
                raise InvalidStateError(event_name, from_state.value)
            outcome = await handler(session, event)
        except ConversationError as e:
            outcome = self._fail(session, e)
        except Exception:
            logger.exception(
                f"Chat {session.chat_id}: unexpected error handling {event_name}"
            )
            session.reset()
            outcome = Error(ErrorKind.INTERNAL, INTERNAL_ERROR_MESSAGE)

        session.touch()
        self.store.set(session.chat_id, session)

        logger.info(
            f"Chat {session.chat_id}: {from_state.value} -> {session.state.value} "
            f"({event_name} => {outcome.kind})"
        )
        return outcome

    def _fail(self, session: ConversationSession, error: ConversationError) -> Error:
        if isinstance(error, NotConnectedError):
            session.phase = ConnectingWallet()
        elif error.context.resets_session:
            session.reset()

        logger.warning(
            f"Chat {session.chat_id}: {error.kind.value} error: {error.message}"
        )
        return self._error_outcome(error)

    @staticmethod
    def _error_outcome(error: ConversationError) -> Error:
        details: Dict[str, Any] = dict(error.context.details)
        if error.context.operation:
            details["operation"] = error.context.operation
        if error.context.status_code is not None:
            details["statusCode"] = error.context.status_code
        if error.context.tx_hash:
            details["txHash"] = error.context.tx_hash
        return Error(error.kind, error.message, details)

    @staticmethod
    def _require(
        session: ConversationSession, event: Event, *states: ConversationState
    ) -> None:
        if session.state not in states:
            raise InvalidStateError(event.name, session.state.value)

    # =========================================================================
    # Menu, help and wallet
    # =========================================================================

    async def _on_request_menu(self, session: ConversationSession, event: RequestMenu) -> Outcome:
        session.reset()
        return ShowMenu(wallet_connected=session.wallet_connected)

    async def _on_request_help(self, session: ConversationSession, event: RequestHelp) -> Outcome:
        return ShowHelp()

    async def _on_request_wallet_link(
        self, session: ConversationSession, event: RequestWalletLink
    ) -> Outcome:
        self._require(session, event, ConversationState.IDLE)
        session.phase = ConnectingWallet()
        return PromptWalletAddress()

    async def _on_submit_wallet_address(
        self, session: ConversationSession, event: SubmitWalletAddress
    ) -> Outcome:
        self._require(session, event, ConversationState.CONNECTING_WALLET)

        address = normalize_address(event.text)
        if not is_valid_move_address(address, min_length=self.wallet_address_min_length):
            raise ValidationError(
                "Please enter a valid wallet address.",
                field_name="wallet_address",
                value=event.text,
            )

        if session.wallet_address and session.wallet_address != address:
            logger.info(f"Chat {session.chat_id}: replacing linked wallet")
        session.wallet_address = address
        session.phase = Idle()
        return ShowMenu(wallet_connected=True)

    async def _on_request_wallet_info(
        self, session: ConversationSession, event: RequestWalletInfo
    ) -> Outcome:
        self._require(session, event, ConversationState.IDLE)

        if not session.wallet_address:
            session.phase = ConnectingWallet()
            return PromptWalletAddress()

        if self.positions is None:
            return ShowWallet(address=session.wallet_address)

        try:
            positions = await self.positions.get_positions(session.wallet_address)
        except UpstreamError as e:
            logger.warning(f"Chat {session.chat_id}: positions unavailable: {e.message}")
            return ShowWallet(address=session.wallet_address)

        return ShowWallet(address=session.wallet_address, positions=tuple(positions))

    # =========================================================================
    # Market selection
    # =========================================================================

    async def _on_request_markets(
        self, session: ConversationSession, event: RequestMarkets
    ) -> Outcome:
        if session.state == ConversationState.AWAITING_CONFIRMATION:
            raise InvalidStateError(event.name, session.state.value)

        if event.action and not session.wallet_address:
            raise NotConnectedError(event.action.value)

        markets = await self.catalog.fetch_markets()
        if not markets:
            raise UpstreamError("No markets available at the moment.", operation="fetch_markets")

        session.available_markets = tuple(markets)
        session.phase = BrowsingMarkets(action=event.action)
        return ShowMarkets(markets=session.available_markets, action=event.action)

    async def _on_select_market(
        self, session: ConversationSession, event: SelectMarket
    ) -> Outcome:
        self._require(session, event, ConversationState.BROWSING_MARKETS)

        markets = session.available_markets
        if event.market_index < 0 or event.market_index >= len(markets):
            raise ValidationError(
                "Invalid market selection. Please try again.",
                field_name="market_index",
                value=event.market_index,
            )

        bound = session.action
        if bound and event.action and event.action != bound:
            raise ValidationError(
                f"This market list is for {bound.value}. Please pick a market to {bound.value}.",
                field_name="action",
                value=event.action.value,
            )

        market = markets[event.market_index]
        action = bound or event.action
        if action is None:
            session.phase = SelectingAction(market=market)
            return PromptAction(market=market)

        return self._begin_amount(session, action, market)

    async def _on_select_action(
        self, session: ConversationSession, event: SelectAction
    ) -> Outcome:
        self._require(session, event, ConversationState.SELECTING_ACTION)
        return self._begin_amount(session, event.action, session.selected_market)

    def _begin_amount(
        self, session: ConversationSession, action: Action, market: Market
    ) -> Outcome:
        if not session.wallet_address:
            raise NotConnectedError(action.value)
        session.phase = AwaitingAmount(action=action, market=market)
        return PromptAmount(action=action, market=market)

    # =========================================================================
    # Amount, confirmation and submission
    # =========================================================================

    async def _on_submit_amount(
        self, session: ConversationSession, event: SubmitAmount
    ) -> Outcome:
        self._require(session, event, ConversationState.AWAITING_AMOUNT)

        phase = session.phase
        amount = parse_amount(event.text)

        if not session.wallet_address:
            raise NotConnectedError(phase.action.value)

        try:
            payload = await self.payloads.build_payload(
                action=phase.action,
                coin_address=phase.market.coin_address,
                market_id=phase.market.id,
                amount=amount,
                wallet_address=session.wallet_address,
            )
            if not payload.matches(phase.action, phase.market, amount, session.wallet_address):
                raise UpstreamError(
                    "Payload service returned a payload for different inputs",
                    operation="build_payload",
                )
        except UpstreamError as e:
            # Stays in AwaitingAmount so the user can resend the amount
            logger.warning(f"Chat {session.chat_id}: payload build failed: {e.message}")
            return Error(
                ErrorKind.UPSTREAM,
                f"Error creating {phase.action.value} transaction. Please try again later.",
                {"operation": "build_payload", **e.context.details},
            )

        session.phase = AwaitingConfirmation(
            action=phase.action,
            market=phase.market,
            amount=amount,
            payload=payload,
        )
        return ShowConfirmation(
            action=phase.action,
            market=phase.market,
            amount=amount,
            payload=payload,
        )

    async def _on_confirm_transaction(
        self, session: ConversationSession, event: ConfirmTransaction
    ) -> Outcome:
        if session.state != ConversationState.AWAITING_CONFIRMATION:
            raise InvalidStateError(
                event.name,
                session.state.value,
                "Transaction details missing. Please try again.",
            )

        phase = session.phase
        if not phase.payload.matches(phase.action, phase.market, phase.amount, session.wallet_address):
            raise StalePayloadError()

        tx_hash = await self.submitter.submit(phase.payload)

        session.reset()
        return Success(
            message=(
                f"Your {phase.action.value} transaction of {phase.amount} tokens "
                f"has been submitted successfully!"
            ),
            tx_hash=tx_hash,
        )

    async def _on_cancel_transaction(
        self, session: ConversationSession, event: CancelTransaction
    ) -> Outcome:
        self._require(session, event, ConversationState.AWAITING_CONFIRMATION)
        session.reset()
        return ShowMenu(wallet_connected=session.wallet_connected)
