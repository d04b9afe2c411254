"""Trade performance statistics."""

import numpy as np
import pandas as pd

from alert_relay.models.trade import Trade

_COLUMNS = [
    "ticker", "strategy", "status", "pnl", "entry_price",
    "stop_loss", "take_profit", "closed_at",
]


def trades_frame(trades: list[Trade]) -> pd.DataFrame:
    rows = [{c: getattr(t, c) for c in _COLUMNS} for t in trades]
    df = pd.DataFrame(rows, columns=_COLUMNS)
    for column in ("pnl", "entry_price", "stop_loss", "take_profit"):
        df[column] = pd.to_numeric(df[column], errors="coerce")
    df["pnl"] = df["pnl"].fillna(0.0)
    df["closed_at"] = pd.to_datetime(df["closed_at"], utc=True)
    return df


def _r2(value: float) -> float:
    return round(float(value), 2)


def _pnl_summary(df: pd.DataFrame) -> dict:
    closed = df[df["status"] == "closed"]
    wins = closed.loc[closed["pnl"] > 0, "pnl"]
    losses = closed.loc[closed["pnl"] < 0, "pnl"]
    return {
        "totalTrades": int(len(df)),
        "openTrades": int((df["status"] == "open").sum()),
        "closedTrades": int(len(closed)),
        "totalPnl": _r2(closed["pnl"].sum()),
        "wins": int(len(wins)),
        "losses": int(len(losses)),
        "winRate": _r2(len(wins) / len(closed) * 100) if len(closed) else 0.0,
        "avgWin": _r2(wins.mean()) if len(wins) else 0.0,
        "avgLoss": _r2(losses.mean()) if len(losses) else 0.0,
    }


def max_drawdown(pnls: np.ndarray) -> tuple[float, int]:
    """Largest peak-to-trough drop of cumulative P&L, and trades since that peak.

    The peak starts at zero so an opening losing streak counts as drawdown.
    """
    if len(pnls) == 0:
        return 0.0, 0
    equity = np.cumsum(pnls)
    peaks = np.maximum.accumulate(np.concatenate(([0.0], equity)))[1:]
    drawdowns = peaks - equity
    worst = int(np.argmax(drawdowns))
    if drawdowns[worst] <= 0:
        return 0.0, 0
    # Trades since the last new high before the trough
    new_high = np.flatnonzero(equity[: worst + 1] >= peaks[worst])
    peak_index = int(new_high[-1]) if len(new_high) and equity[new_high[-1]] > 0 else -1
    return float(drawdowns[worst]), worst - peak_index


def average_rr(df: pd.DataFrame) -> float:
    rows = df[(df["status"] == "closed") & df["stop_loss"].notna() & df["take_profit"].notna()]
    rows = rows[(rows["stop_loss"] != 0) & (rows["take_profit"] != 0)]
    risk = (rows["entry_price"] - rows["stop_loss"]).abs()
    reward = (rows["take_profit"] - rows["entry_price"]).abs()
    ratios = (reward / risk)[risk > 0]
    return _r2(ratios.mean()) if len(ratios) else 0.0


def summary_stats(trades: list[Trade]) -> dict:
    """Overall and per-ticker figures for the trades list view."""
    df = trades_frame(trades)
    overall = _pnl_summary(df)
    by_ticker = [
        {"ticker": ticker, **_pnl_summary(group)}
        for ticker, group in df.groupby("ticker", sort=False)
    ]
    by_ticker.sort(key=lambda s: s["totalTrades"], reverse=True)
    return {"overall": overall, "byTicker": by_ticker}


def strategy_stats(trades: list[Trade]) -> list[dict]:
    """Per-strategy performance, best total P&L first. Trades without a strategy are excluded."""
    df = trades_frame(trades)
    df = df[df["strategy"].notna()]
    results = []
    for strategy, group in df.groupby("strategy"):
        closed = group[(group["status"] == "closed") & group["closed_at"].notna()].sort_values("closed_at")
        dd, dd_trades = max_drawdown(closed["pnl"].to_numpy(dtype=float))
        results.append({
            "strategy": strategy,
            **_pnl_summary(group),
            "maxDrawdown": _r2(dd),
            "maxDrawdownTrades": dd_trades,
            "avgRR": average_rr(group),
            "tickers": sorted(group["ticker"].unique().tolist()),
        })
    results.sort(key=lambda s: s["totalPnl"], reverse=True)
    return results
