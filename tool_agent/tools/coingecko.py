"""
CoinGecko cryptocurrency tools.

Provides current prices for a list of coins and the market-cap ranking of
the top coins, formatted for LLM consumption.
"""

import functools
import logging
from typing import Optional

from pydantic import Field

from ..config import ToolConfig
from ..errors import ToolRuntimeFailure
from .http import http_get
from .registry import ToolInput, ToolSpec

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 250

COMMON_COIN_IDS = "bitcoin, ethereum, solana, cardano, polkadot, chainlink, avalanche-2, polygon"


def format_large_number(num: float) -> str:
    """Format large numbers with T/B/M/K suffixes."""
    if num >= 1e12:
        return f"{num / 1e12:.2f}T"
    if num >= 1e9:
        return f"{num / 1e9:.2f}B"
    if num >= 1e6:
        return f"{num / 1e6:.2f}M"
    if num >= 1e3:
        return f"{num / 1e3:.2f}K"
    return f"{num:.2f}"


def format_price(price: float) -> str:
    """Format a price with more decimals the smaller it is."""
    if price >= 1:
        return f"{price:,.2f}"
    if price >= 0.01:
        return f"{price:.4f}"
    if price >= 0.0001:
        return f"{price:.6f}"
    return f"{price:.8f}"


def _format_change(change: float) -> str:
    emoji = "📈" if change >= 0 else "📉"
    prefix = "+" if change >= 0 else ""
    return f"{emoji} 24h Change: {prefix}{change:.2f}%"


def _headers(config: ToolConfig) -> dict:
    if config.coingecko_api_key:
        return {"x-cg-demo-api-key": config.coingecko_api_key}
    return {}


class PriceInput(ToolInput):
    coin_ids: str = Field(
        alias="coinIds",
        min_length=1,
        description="Comma-separated list of coin IDs (e.g., 'bitcoin,ethereum,solana')",
    )
    vs_currencies: Optional[str] = Field(
        default=None,
        alias="vsCurrencies",
        description="Comma-separated list of currencies (default: 'usd')",
    )
    include_market_cap: Optional[bool] = Field(
        default=None, alias="includeMarketCap", description="Include market cap data (default: true)"
    )
    include_volume: Optional[bool] = Field(
        default=None, alias="includeVolume", description="Include 24h volume data (default: true)"
    )
    include_price_change: Optional[bool] = Field(
        default=None,
        alias="includePriceChange",
        description="Include 24h price change data (default: true)",
    )


class MarketInput(ToolInput):
    vs_currency: Optional[str] = Field(
        default=None, alias="vsCurrency", description="The target currency (default: 'usd')"
    )
    per_page: int = Field(
        default=10,
        alias="perPage",
        ge=1,
        le=MAX_PER_PAGE,
        description="Number of results per page (max 250, default: 10)",
    )
    page: int = Field(default=1, ge=1, description="Page number (default: 1)")
    category: Optional[str] = Field(
        default=None, description="Filter by category (e.g., 'decentralized-finance-defi', 'gaming')"
    )


def format_price_report(data: dict, currencies: list[str]) -> str:
    """
    Format a /simple/price payload.

    Args:
        data: Mapping of coin id -> {"usd": ..., "usd_market_cap": ..., ...}
        currencies: Currencies requested, in order.
    """
    lines = ["💰 **Cryptocurrency Prices**", ""]
    for coin_id, price_data in data.items():
        lines.append(f"🪙 **{coin_id.replace('-', ' ').upper()}**")
        for currency in currencies:
            price = price_data.get(currency)
            if isinstance(price, (int, float)):
                lines.append(f"   💵 Price ({currency.upper()}): {format_price(price)}")
            market_cap = price_data.get(f"{currency}_market_cap")
            if market_cap:
                lines.append(f"   📊 Market Cap: {format_large_number(market_cap)}")
            volume = price_data.get(f"{currency}_24h_vol")
            if volume:
                lines.append(f"   📈 24h Volume: {format_large_number(volume)}")
            change = price_data.get(f"{currency}_24h_change")
            if change is not None:
                lines.append(f"   {_format_change(change)}")
        lines.append("")
    return "\n".join(lines)


def format_market_report(coins: list[dict], currency: str, category: Optional[str]) -> str:
    """Format a /coins/markets payload as a ranked list."""
    lines = [f"📊 **Top {len(coins)} Cryptocurrencies by Market Cap**"]
    if category:
        lines.append(f"🏷️ Category: {category}")
    lines.append(f"💱 Currency: {currency.upper()}")
    lines.append("")

    for coin in coins:
        symbol = (coin.get("symbol") or "").upper()
        lines.append(f"**{coin.get('market_cap_rank')}. {coin.get('name')} ({symbol})**")
        lines.append(f"   💰 {format_price(coin.get('current_price') or 0)}")
        lines.append(f"   📊 Market Cap: {format_large_number(coin.get('market_cap') or 0)}")
        lines.append(f"   📈 24h Volume: {format_large_number(coin.get('total_volume') or 0)}")
        change = coin.get("price_change_percentage_24h")
        if change is not None:
            lines.append(f"   {_format_change(change)}")
        supply = coin.get("circulating_supply")
        if supply:
            lines.append(f"   🔄 Circulating: {format_large_number(supply)} {symbol}")
        lines.append("")
    return "\n".join(lines)


async def fetch_prices(args: PriceInput, config: ToolConfig) -> str:
    """Get current prices from CoinGecko's /simple/price endpoint."""
    currencies_param = args.vs_currencies or "usd"
    currencies = [c.strip().lower() for c in currencies_param.split(",") if c.strip()]

    def flag(value: Optional[bool]) -> str:
        return "true" if value is None or value else "false"

    params = {
        "ids": args.coin_ids,
        "vs_currencies": ",".join(currencies),
        "include_market_cap": flag(args.include_market_cap),
        "include_24hr_vol": flag(args.include_volume),
        "include_24hr_change": flag(args.include_price_change),
        "include_last_updated_at": "true",
    }

    response = await http_get(
        f"{config.coingecko_base_url}/simple/price",
        params=params,
        headers=_headers(config),
        timeout=config.http_timeout,
    )
    if response.status_code == 404:
        raise ToolRuntimeFailure(
            f"Sorry, I couldn't find price data for \"{args.coin_ids}\". "
            f"Please check the coin ID and try again. Common coin IDs: {COMMON_COIN_IDS}."
        )
    if not response.is_success:
        logger.error(f"CoinGecko API error {response.status_code}: {response.text[:200]}")
        raise ToolRuntimeFailure(f"CoinGecko API error! status: {response.status_code}")

    data = response.json()
    if not data:
        raise ToolRuntimeFailure(
            f"Sorry, I couldn't find price data for \"{args.coin_ids}\". "
            f"Common coin IDs: {COMMON_COIN_IDS}."
        )
    return format_price_report(data, currencies)


async def fetch_market(args: MarketInput, config: ToolConfig) -> str:
    """Get the top coins by market cap from CoinGecko's /coins/markets endpoint."""
    currency = args.vs_currency or "usd"
    params = {
        "vs_currency": currency,
        "order": "market_cap_desc",
        "per_page": str(args.per_page),
        "page": str(args.page),
        "sparkline": "false",
        "locale": "en",
    }
    if args.category:
        params["category"] = args.category

    response = await http_get(
        f"{config.coingecko_base_url}/coins/markets",
        params=params,
        headers=_headers(config),
        timeout=config.http_timeout,
    )
    if not response.is_success:
        raise ToolRuntimeFailure(f"CoinGecko API error! status: {response.status_code}")

    return format_market_report(response.json(), currency, args.category)


def create_coingecko_tools(config: ToolConfig) -> list[ToolSpec]:
    return [
        ToolSpec(
            name="coinGeckoPrice",
            description=(
                "Get current cryptocurrency prices from CoinGecko. "
                "Use coin IDs like 'bitcoin', 'ethereum', 'solana', etc."
            ),
            input_model=PriceInput,
            implementation=functools.partial(fetch_prices, config=config),
        ),
        ToolSpec(
            name="coinGeckoMarket",
            description="Get market data for the top cryptocurrencies by market cap from CoinGecko.",
            input_model=MarketInput,
            implementation=functools.partial(fetch_market, config=config),
        ),
    ]
