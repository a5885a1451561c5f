#!/usr/bin/env python3
import logging
import os
import select
import sys
import termios
import tty
from contextlib import contextmanager
from decimal import Decimal
from io import StringIO
from typing import Callable, Iterator, Optional, TypeVar

from rich import box
from rich.console import Console, RenderableType
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich.text import Text

from portfolio_tracker import Instrument, Ledger, MarketSimulator, TransactionRecord

logger = logging.getLogger(__name__)
console = Console()

# ANSI escape codes for terminal styling
ANSI_BOLD_CYAN = "\033[1;36m"
ANSI_DIM = "\033[2m"
ANSI_RESET = "\033[0m"
ANSI_ERASE_UP = "\033[{}F\033[J"  # back to the start of N lines up, clear below

DEFAULT_PORTFOLIO_NAME = "My Portfolio"
ANALYSIS_COUNT = 3

MENU: list[str] = [
    "view",
    "buy",
    "sell",
    "market",
    "performance",
    "search",
    "sort",
    "sectors",
    "history",
    "simulate",
    "exit",
]
MENU_LABELS: dict[str, str] = {
    "view": "View portfolio",
    "buy": "Buy stock",
    "sell": "Sell stock",
    "market": "Market overview",
    "performance": "Performance analysis",
    "search": "Search stock",
    "sort": "Sort holdings by performance",
    "sectors": "Sector analysis",
    "history": "Transaction history",
    "simulate": "Simulate market movement",
    "exit": "Exit",
}

MENU_KEYS: dict[str, str] = {
    "\x1b[A": "up",
    "\x1b[B": "down",
    "k": "up",
    "j": "down",
    "\r": "enter",
    "\n": "enter",
}

T = TypeVar("T")


def _signed_style(value: float | Decimal) -> str:
    if value > 0:
        return "green"
    return "red" if value < 0 else "white"


def _pct(value: float) -> Text:
    return Text(f"{value:+.2f}%", style=_signed_style(value))


def summary_panel(ledger: Ledger) -> Panel:
    """Build a panel with cash, total value, gain/loss and performance."""
    gain = ledger.total_gain_loss()
    perf = ledger.performance_percentage()
    body = (
        f"Cash: [bold]${ledger.cash_balance:,.2f}[/bold]   "
        f"Total: [bold]${ledger.total_value():,.2f}[/bold]   "
        f"Gain/Loss: [{_signed_style(gain)}]${gain:,.2f}[/{_signed_style(gain)}]   "
        f"Performance: [{_signed_style(perf)}]{perf:+.2f}%[/{_signed_style(perf)}]"
    )
    return Panel(body, title=ledger.name, box=box.ROUNDED)


def holdings_table(ledger: Ledger, title: str = "Holdings") -> Table:
    """Build a Rich table showing held positions and their performance."""
    t = Table(title=title, box=box.ROUNDED, title_style="bold white")
    t.add_column("Symbol", style="cyan")
    t.add_column("Company", style="dim")
    t.add_column("Shares", justify="right")
    t.add_column("Price", justify="right")
    t.add_column("Value", justify="right")
    t.add_column("Perf", justify="right")

    for instrument, quantity in ledger.positions():
        t.add_row(
            instrument.symbol,
            instrument.name,
            str(quantity),
            f"${instrument.current_price:,.2f}",
            f"${Decimal(quantity) * instrument.current_price:,.2f}",
            _pct(instrument.performance()),
        )

    t.add_section()
    t.add_row("", "Cash", "", "", f"${ledger.cash_balance:,.2f}", "")
    t.add_row(
        "", "", "", "Total", f"[bold]${ledger.total_value():,.2f}[/bold]", ""
    )
    return t


def market_table(market: MarketSimulator) -> Table:
    """Build a Rich table with every instrument the market offers."""
    t = Table(title="Market Overview", box=box.ROUNDED, title_style="bold white")
    t.add_column("Symbol", style="cyan")
    t.add_column("Company", style="dim")
    t.add_column("Price", justify="right")
    t.add_column("Perf", justify="right")
    t.add_column("Sector", style="yellow")

    for instrument in market.instruments():
        t.add_row(
            instrument.symbol,
            instrument.name,
            f"${instrument.current_price:,.2f}",
            _pct(instrument.performance()),
            instrument.sector,
        )
    return t


def ranking_table(title: str, instruments: list[Instrument]) -> Table:
    t = Table(title=title, box=box.ROUNDED, title_style="bold white")
    t.add_column("#", justify="right", style="dim")
    t.add_column("Symbol", style="cyan")
    t.add_column("Perf", justify="right")
    for rank, instrument in enumerate(instruments, start=1):
        t.add_row(str(rank), instrument.symbol, _pct(instrument.performance()))
    return t


def sector_table(allocation: dict[str, float]) -> Table:
    t = Table(title="Sector Diversification", box=box.ROUNDED, title_style="bold white")
    t.add_column("Sector", style="yellow")
    t.add_column("Weight", justify="right")
    for sector, weight in allocation.items():
        t.add_row(sector, f"{weight:.1f}%")
    return t


def transactions_table(transactions: list[TransactionRecord]) -> Table:
    t = Table(title="Recent Transactions", box=box.ROUNDED, title_style="bold white")
    t.add_column("Date", style="dim")
    t.add_column("Action", no_wrap=True)
    t.add_column("Symbol", style="cyan")
    t.add_column("Shares", justify="right")
    t.add_column("Price", justify="right")
    t.add_column("Total", justify="right")

    for tx in transactions:
        style = "green" if tx.side == "BUY" else "red"
        t.add_row(
            tx.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S"),
            Text(tx.side, style=f"bold {style}"),
            tx.symbol,
            str(tx.quantity),
            f"${tx.price_per_unit:,.2f}",
            f"${tx.total:,.2f}",
        )
    return t


def instrument_panel(instrument: Instrument) -> Panel:
    body = (
        f"Company: {instrument.name}\n"
        f"Sector: {instrument.sector}\n"
        f"Current price: ${instrument.current_price:,.2f}\n"
        f"Performance: {instrument.performance():+.2f}%\n"
        f"Price history: {len(instrument.price_history)} entries\n"
        f"Average price: ${instrument.average_price():,.2f}\n"
        f"Volatility: ${instrument.volatility():,.2f}"
    )
    return Panel(body, title=f"[bold cyan]{instrument.symbol}[/bold cyan]", box=box.ROUNDED)


def _rich_to_str(renderable: RenderableType) -> str:
    """Convert a Rich renderable to a string with ANSI codes."""
    buf = StringIO()
    Console(file=buf, width=console.width, force_terminal=True).print(renderable)
    return buf.getvalue().rstrip("\n")


@contextmanager
def _raw_stdin() -> Iterator[int]:
    fd = sys.stdin.fileno()
    saved = termios.tcgetattr(fd)
    tty.setraw(fd)
    try:
        yield fd
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _has_input(fd: int) -> bool:
    return bool(select.select([fd], [], [], 0.05)[0])


def read_key() -> Optional[str]:
    """Block for one keypress and name it ("up", "down", "enter"), or None."""
    with _raw_stdin() as fd:
        data = os.read(fd, 1)
        # Arrow keys arrive as a three-byte escape sequence
        while data.startswith(b"\x1b") and len(data) < 3 and _has_input(fd):
            data += os.read(fd, 1)
    return MENU_KEYS.get(data.decode(errors="ignore"))


def _render_menu(options: list[T], labels: dict[T, str], selected: int) -> str:
    lines = []
    for i, opt in enumerate(options):
        marker = "▸" if i == selected else " "
        style = ANSI_BOLD_CYAN if i == selected else ANSI_DIM
        lines.append(f"{style}  {marker} {labels[opt]}{ANSI_RESET}")
    return "\n".join(lines)


def _full_render(
    options: list[T],
    labels: dict[T, str],
    selected: int,
    header: Optional[Callable[[], RenderableType]],
) -> str:
    parts = []
    if header:
        parts.append(_rich_to_str(header()))
    parts.append(_render_menu(options, labels, selected))
    return "\n".join(parts) + "\n"


def _erase(lines: int) -> None:
    if lines:
        sys.stdout.write(ANSI_ERASE_UP.format(lines))


def pick(
    options: list[T],
    labels: dict[T, str],
    default: int = 0,
    header: Optional[Callable[[], RenderableType]] = None,
) -> T:
    """Menu driven by arrow keys or j/k; ``header`` is redrawn above the options."""
    selected = default
    drawn = 0
    while True:
        _erase(drawn)
        screen = _full_render(options, labels, selected, header)
        sys.stdout.write(screen)
        sys.stdout.flush()
        drawn = screen.count("\n")

        key = read_key()
        if key == "enter":
            break
        if key in ("up", "down"):
            selected = (selected + (-1 if key == "up" else 1)) % len(options)

    _erase(drawn)
    sys.stdout.flush()
    console.print(f"  [bold cyan]▸ {labels[options[selected]]}[/bold cyan]")
    return options[selected]


def _prompt_instrument(market: MarketSimulator) -> Optional[Instrument]:
    symbol = Prompt.ask("  Stock symbol").strip().upper()
    instrument = market.find(symbol)
    if instrument is None:
        console.print(f"  [red]Stock not found: {symbol}[/red]")
    return instrument


def trade(ledger: Ledger, market: MarketSimulator, side: str) -> None:
    """Prompt for a symbol and quantity and execute at the current market price."""
    instrument = _prompt_instrument(market)
    if instrument is None:
        return

    console.print(f"  Current price: [bold]${instrument.current_price:,.2f}[/bold]")
    quantity = IntPrompt.ask(f"  Quantity to {side.lower()}")
    if quantity <= 0:
        console.print("  [red]Invalid quantity![/red]")
        return

    execute = ledger.buy if side == "BUY" else ledger.sell
    # Rejections are reported by the ledger's warning log.
    result = execute(instrument.symbol, quantity, instrument.current_price)
    if result:
        console.print(f"  [green]{result.message}[/green]")


def show_performance(ledger: Ledger) -> None:
    console.print(ranking_table("Top Performers", ledger.top_performers(ANALYSIS_COUNT)))
    console.print(ranking_table("Worst Performers", ledger.worst_performers(ANALYSIS_COUNT)))


def search(ledger: Ledger) -> None:
    symbol = Prompt.ask("  Stock symbol").strip().upper()
    instrument = ledger.find_instrument(symbol)
    if instrument is None:
        console.print(f"  [red]{symbol} is not tracked by this portfolio.[/red]")
        return
    console.print(instrument_panel(instrument))
    held = ledger.quantity(symbol)
    if held:
        console.print(f"  You own [bold]{held}[/bold] shares.")


def simulate(ledger: Ledger, market: MarketSimulator) -> None:
    with console.status("[bold]Simulating market movement...[/bold]"):
        moves = market.step()
    logger.info("Simulated one market step for %d instruments", len(moves))
    ledger.recompute_sector_allocation()
    console.print("  [green]Market prices updated![/green]")
    console.print(market_table(market))


def handle(choice: str, ledger: Ledger, market: MarketSimulator) -> bool:
    """Run one menu action. Returns False when the user chose to exit."""
    if choice == "view":
        console.print(holdings_table(ledger, f"Portfolio: {ledger.name}"))
    elif choice == "buy":
        trade(ledger, market, "BUY")
    elif choice == "sell":
        trade(ledger, market, "SELL")
    elif choice == "market":
        console.print(market_table(market))
    elif choice == "performance":
        show_performance(ledger)
    elif choice == "search":
        search(ledger)
    elif choice == "sort":
        console.print(ranking_table("Holdings by Performance", ledger.sorted_by_performance()))
    elif choice == "sectors":
        console.print(sector_table(ledger.recompute_sector_allocation()))
    elif choice == "history":
        console.print(transactions_table(ledger.recent_transactions()))
    elif choice == "simulate":
        simulate(ledger, market)
    elif choice == "exit":
        return False
    else:
        raise ValueError(f"Unknown menu choice: {choice}")
    return True


def run_cli_loop(ledger: Ledger, market: MarketSimulator) -> None:
    while True:
        console.print()
        choice = pick(MENU, MENU_LABELS, header=lambda: summary_panel(ledger))
        console.print()
        if not handle(choice, ledger, market):
            break
        console.print()
        if not Confirm.ask("  Continue?", default=True):
            break


def main() -> None:
    """Entry point for the CLI application."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    console.print()
    console.print(
        Panel("[bold]Stock Portfolio Tracker[/bold] · simulated market", box=box.DOUBLE)
    )

    name = Prompt.ask("  Portfolio name", default=DEFAULT_PORTFOLIO_NAME)
    ledger = Ledger(name)
    market = MarketSimulator()
    with console.status("[bold]Simulating price history...[/bold]"):
        market.simulate_history()
    market.register_all(ledger)

    run_cli_loop(ledger, market)


if __name__ == "__main__":
    main()
