#!/usr/bin/env python3
"""Simple CLI for testing the Plutus Move bot locally"""

import argparse
import asyncio

from plutus.core.bot import close_engine, create_engine, get_engine
from plutus.core.conversation import (
    Action,
    ConversationState,
    Error,
    Event,
    Outcome,
    PromptAction,
    PromptAmount,
    PromptWalletAddress,
    SelectAction,
    SelectMarket,
    ShowConfirmation,
    ShowHelp,
    ShowMarkets,
    ShowMenu,
    ShowWallet,
    SubmitAmount,
    SubmitWalletAddress,
    parse_callback_data,
)
from plutus.core.errors import UpstreamError
from plutus.logging_config import setup_logging
from plutus.services import short_address


LOCAL_CHAT_ID = "cli"

KEYWORDS = {"menu", "help", "wallet", "connect", "connect_wallet", "markets", "confirm", "cancel"}


def print_markets(markets, action=None):
    """Pretty print a market list"""
    if not markets:
        print("❌ No markets available")
        return

    print("\n📈 Markets" + (f" to {action.value}" if action else ""))
    print("=" * 50)
    for i, market in enumerate(markets, 1):
        symbol = f" ({market.symbol})" if market.symbol else ""
        print(f"{i:2d}. {market.display_name}{symbol}")
        print(f"    Supply APR: {market.supply_apr:.2f}%  Borrow APR: {market.borrow_apr:.2f}%  Price: ${market.price:,.4f}")


def render_outcome(outcome: Outcome) -> None:
    """Print an engine outcome as plain text"""
    if isinstance(outcome, ShowMenu):
        print("\n🏦 Plutus Move Bot")
        if outcome.wallet_connected:
            print("Commands: markets, supply, withdraw, borrow, repay, wallet, help")
        else:
            print("Commands: connect, markets, help")

    elif isinstance(outcome, ShowHelp):
        print("\nHow to use the bot:")
        print("  1. Connect your wallet (connect)")
        print("  2. Browse markets (markets, or supply/withdraw/borrow/repay)")
        print("  3. Pick a market by number, then enter an amount")
        print("  4. Review and confirm the transaction (confirm / cancel)")

    elif isinstance(outcome, PromptWalletAddress):
        print("\n🔗 Enter your Move wallet address:")

    elif isinstance(outcome, ShowWallet):
        print(f"\n👛 Wallet: {outcome.address}")
        if outcome.positions is None:
            print("   Positions unavailable right now")
        elif not outcome.positions:
            print("   No open positions")
        else:
            for position in outcome.positions:
                print(f"   {position.market_id}: supplied {position.supplied}, borrowed {position.borrowed}")

    elif isinstance(outcome, ShowMarkets):
        print_markets(outcome.markets, outcome.action)
        print("\nPick a market by number.")

    elif isinstance(outcome, PromptAction):
        print(f"\n{outcome.market.display_name}: what would you like to do?")
        print("  " + " / ".join(a.value for a in outcome.actions))

    elif isinstance(outcome, PromptAmount):
        apr = outcome.market.apr_for(outcome.action)
        print(f"\n{outcome.action.label} {outcome.market.display_name} ({outcome.action.apr_kind} APR {apr:.2f}%)")
        print("Enter the amount:")

    elif isinstance(outcome, ShowConfirmation):
        print("\n📝 Confirm transaction")
        print(f"   Action: {outcome.action.label}")
        print(f"   Market: {outcome.market.display_name}")
        print(f"   Amount: {outcome.amount}")
        if outcome.payload.function:
            print(f"   Function: {outcome.payload.function}")
        print("Type 'confirm' or 'cancel'.")

    elif isinstance(outcome, Error):
        print(f"❌ {outcome.message}")

    else:
        print(f"✅ {outcome.message}")
        if outcome.tx_hash:
            print(f"   Transaction Hash: {outcome.tx_hash}")


def text_to_event(text: str, state: ConversationState) -> Event:
    """Interpret a typed line in the context of the current state"""
    lowered = text.lower()

    if lowered not in KEYWORDS:
        if state == ConversationState.CONNECTING_WALLET:
            return SubmitWalletAddress(text=text)
        if state == ConversationState.AWAITING_AMOUNT:
            return SubmitAmount(text=text)
        if state == ConversationState.BROWSING_MARKETS and text.isdigit():
            return SelectMarket(market_index=int(text) - 1)
        if state == ConversationState.SELECTING_ACTION:
            return SelectAction(action=Action(lowered))

    if lowered == "connect":
        lowered = "connect_wallet"
    return parse_callback_data(lowered)


async def cli_chat():
    """Interactive chat mode"""
    print("🤖 Plutus Move Bot")
    print("Type 'exit' to quit, 'menu' to start over")
    print("-" * 40)

    engine = get_engine()
    render_outcome(ShowMenu())

    while True:
        try:
            user_input = input("\n💬 You: ").strip()

            if user_input.lower() in ['exit', 'quit', 'q']:
                print("Goodbye! 👋")
                break

            elif not user_input:
                continue

            session = engine.store.peek(LOCAL_CHAT_ID)
            state = session.state if session else ConversationState.IDLE
            try:
                event = text_to_event(user_input, state)
            except ValueError:
                print("❓ Unrecognized input. Type 'help' for commands.")
                continue

            render_outcome(await engine.handle(LOCAL_CHAT_ID, event))

        except KeyboardInterrupt:
            print("\nGoodbye! 👋")
            break

    await close_engine()


async def cli_markets():
    """Print the market catalog once"""
    engine = create_engine()
    print("🔍 Fetching markets...")
    try:
        print_markets(await engine.catalog.fetch_markets())
    except UpstreamError as e:
        print(f"❌ Error: {e.message}")
    finally:
        await engine.catalog.close()
        await engine.submitter.close()

    if hasattr(engine.submitter, "address"):
        print(f"\nCustodial account: {short_address(engine.submitter.address)}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Plutus Move Bot CLI")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("chat", help="Interactive chat mode")
    subparsers.add_parser("markets", help="List lending markets")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.log_level or "WARNING", log_format="console")
    command = args.command.lower()

    if command == "chat":
        await cli_chat()

    elif command == "markets":
        await cli_markets()

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


if __name__ == "__main__":
    asyncio.run(main())
