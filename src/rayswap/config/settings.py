"""
Layered settings for the swapper.

Layers, later wins:
    1. built-in defaults (dataclass fields)
    2. settings.toml (optional)
    3. flat environment names (PRIVATE_KEY, RPC_ENDPOINT, ...), .env included
    4. RAYSWAP__SECTION__KEY environment overrides

Every value that changes between layers is recorded as an OverrideRecord and
reported by log_summary(). The wallet secret is never logged.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import toml
from dotenv import load_dotenv
from loguru import logger

from rayswap.config.tokens import SolanaToken, get_token, load_extra_tokens
from rayswap.errors import ConfigError

DEFAULT_JITO_ENDPOINTS: Tuple[str, ...] = (
    "https://mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://amsterdam.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://frankfurt.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://ny.mainnet.block-engine.jito.wtf/api/v1/bundles",
    "https://tokyo.mainnet.block-engine.jito.wtf/api/v1/bundles",
)

WARP_EXECUTE_URL = "https://tx.warp.id/transaction/execute"

COMMITMENTS = {"processed", "confirmed", "finalized"}
EXECUTORS = {"default", "warp", "jito"}

# Flat names accepted from the environment / .env
LEGACY_ENV: Dict[str, Tuple[str, str]] = {
    "PRIVATE_KEY": ("wallet", "private_key"),
    "RPC_ENDPOINT": ("rpc", "endpoint"),
    "RPC_WEBSOCKET_ENDPOINT": ("rpc", "websocket_endpoint"),
    "COMMITMENT_LEVEL": ("rpc", "commitment"),
    "LOG_LEVEL": ("logging", "level"),
    "QUOTE_MINT": ("trading", "quote_mint"),
    "BUY_SLIPPAGE": ("trading", "buy_slippage"),
    "SELL_SLIPPAGE": ("trading", "sell_slippage"),
    "MAX_BUY_RETRIES": ("trading", "max_buy_retries"),
    "MAX_SELL_RETRIES": ("trading", "max_sell_retries"),
    "COMPUTE_UNIT_LIMIT": ("trading", "compute_unit_limit"),
    "COMPUTE_UNIT_PRICE": ("trading", "compute_unit_price"),
    "TRANSACTION_EXECUTOR": ("executor", "kind"),
    "CUSTOM_FEE": ("executor", "custom_fee"),
    "TX_SIMULATE": ("executor", "simulate"),
    "HTTP_PROXY": ("executor", "http_proxy"),
    "JITO_BLOCK_ENGINE_URL": ("executor", "jito_block_engine_url"),
}

SECRET_KEYS = {"wallet.private_key"}


@dataclass(frozen=True)
class RpcSettings:
    endpoint: str
    websocket_endpoint: Optional[str] = None
    commitment: str = "confirmed"
    confirm_timeout_seconds: float = 60.0
    poll_interval_seconds: float = 0.5

    def __post_init__(self):
        if not self.endpoint:
            raise ValueError("rpc.endpoint is required")
        if self.commitment not in COMMITMENTS:
            raise ValueError(f"rpc.commitment must be one of {sorted(COMMITMENTS)}, got {self.commitment!r}")
        if self.confirm_timeout_seconds <= 0 or self.poll_interval_seconds <= 0:
            raise ValueError("rpc timeouts must be positive")


@dataclass(frozen=True)
class WalletSettings:
    private_key: str = field(repr=False)

    def __post_init__(self):
        if not self.private_key:
            raise ValueError("wallet.private_key is required")


@dataclass(frozen=True)
class TradingSettings:
    quote_mint: str = "WSOL"
    extra_quote_tokens: str = ""
    buy_slippage: float = 20.0
    sell_slippage: float = 20.0
    max_buy_retries: int = 10
    max_sell_retries: int = 10
    compute_unit_limit: int = 200_000
    compute_unit_price: int = 20_000

    def __post_init__(self):
        if self.buy_slippage < 0 or self.sell_slippage < 0:
            raise ValueError("slippage must be >= 0")
        if self.max_buy_retries < 1 or self.max_sell_retries < 1:
            raise ValueError("retry bounds must be >= 1")
        if self.compute_unit_limit <= 0 or self.compute_unit_price < 0:
            raise ValueError("compute unit limit must be > 0 and price >= 0")

    @property
    def quote_token(self) -> SolanaToken:
        try:
            return get_token(self.quote_mint, load_extra_tokens(self.extra_quote_tokens))
        except KeyError as e:
            raise ConfigError(f"unknown quote token: {self.quote_mint}") from e


@dataclass(frozen=True)
class ExecutorSettings:
    kind: str = "default"
    custom_fee: float = 0.006
    simulate: bool = False
    warp_url: str = WARP_EXECUTE_URL
    jito_endpoints: Tuple[str, ...] = DEFAULT_JITO_ENDPOINTS
    jito_dynamic_tip: bool = False
    http_proxy: Optional[str] = None

    def __post_init__(self):
        if self.kind not in EXECUTORS:
            raise ValueError(f"executor.kind must be one of {sorted(EXECUTORS)}, got {self.kind!r}")
        if self.kind != "default" and self.custom_fee <= 0:
            raise ValueError("executor.custom_fee must be positive for warp/jito")
        if not self.jito_endpoints:
            raise ValueError("executor.jito_endpoints cannot be empty")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class OverrideRecord:
    key: str
    source: str
    old: Any
    new: Any


@dataclass
class SwapperSettings:
    rpc: RpcSettings
    wallet: WalletSettings
    trading: TradingSettings = field(default_factory=TradingSettings)
    executor: ExecutorSettings = field(default_factory=ExecutorSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    overrides: List[OverrideRecord] = field(default_factory=list)
    loaded_files: List[str] = field(default_factory=list)

    @classmethod
    def load(
        cls,
        settings_path: Optional[str] = "settings.toml",
        env_prefix: str = "RAYSWAP__",
        environ: Optional[Mapping[str, str]] = None,
        use_dotenv: bool = True,
    ) -> "SwapperSettings":
        if use_dotenv:
            load_dotenv()
        env = os.environ if environ is None else environ

        layers: List[Tuple[Dict[str, Any], str]] = []
        loaded_files: List[str] = []

        if settings_path and os.path.exists(settings_path):
            with open(settings_path, "r", encoding="utf-8") as f:
                try:
                    data = toml.load(f)
                except toml.TomlDecodeError as e:
                    raise ConfigError(f"invalid toml in {settings_path}: {e}") from e
            label = os.path.basename(settings_path)
            layers.append((data, label))
            loaded_files.append(label)

        legacy = _load_legacy_env(env)
        if legacy:
            layers.append((legacy, "env"))

        prefixed = _load_env_overrides(env, env_prefix)
        if prefixed:
            layers.append((prefixed, f"env:{env_prefix}"))

        merged: Dict[str, Any] = {}
        overrides: List[OverrideRecord] = []
        for payload, source in layers:
            _merge_dicts(merged, payload, source, overrides)

        try:
            cfg = cls(
                rpc=_build_rpc(merged),
                wallet=WalletSettings(private_key=str(_section(merged, "wallet").get("private_key", "") or "").strip()),
                trading=_build_trading(merged),
                executor=_build_executor(merged),
                logging=_build_logging(merged),
                overrides=overrides,
                loaded_files=loaded_files,
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(str(e)) from e

        # Fail at boot, not on the first swap.
        quote = cfg.trading.quote_token
        logger.debug(f"CONFIG | quote_token={quote.symbol} | mint={quote.mint}")
        return cfg

    def log_summary(self) -> None:
        logger.info(f"CONFIG | files={', '.join(self.loaded_files) or '<none>'}")
        for o in self.overrides:
            if o.key in SECRET_KEYS:
                logger.info(f"CONFIG | override | key={o.key} | source={o.source} | value=<redacted>")
                continue
            logger.info(f"CONFIG | override | key={o.key} | source={o.source} | old={o.old} | new={o.new}")
        logger.info(
            f"CONFIG | rpc={self.rpc.endpoint} | commitment={self.rpc.commitment} | "
            f"confirm_timeout={self.rpc.confirm_timeout_seconds}s"
        )
        logger.info(
            f"CONFIG | quote={self.trading.quote_mint} | slippage buy={self.trading.buy_slippage}% "
            f"sell={self.trading.sell_slippage}% | retries buy={self.trading.max_buy_retries} "
            f"sell={self.trading.max_sell_retries}"
        )
        logger.info(
            f"CONFIG | compute_unit_limit={self.trading.compute_unit_limit} | "
            f"compute_unit_price={self.trading.compute_unit_price}"
        )
        logger.info(
            f"CONFIG | executor={self.executor.kind} | custom_fee={self.executor.custom_fee} | "
            f"simulate={self.executor.simulate} | proxy={'set' if self.executor.http_proxy else 'none'}"
        )


def _merge_dicts(dst: Dict[str, Any], src: Dict[str, Any], source: str, overrides: List[OverrideRecord], prefix: str = "") -> None:
    for key, value in src.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _merge_dicts(dst[key], value, source, overrides, full_key)
        elif isinstance(value, dict):
            dst[key] = value.copy()
        else:
            if key in dst and dst[key] != value:
                overrides.append(OverrideRecord(full_key, source, dst[key], value))
            dst[key] = value


def _load_legacy_env(env: Mapping[str, str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for env_key, (section, key) in LEGACY_ENV.items():
        raw = env.get(env_key)
        if raw is None or raw.strip() == "":
            continue
        value = raw.strip() if section == "wallet" else _coerce_env_value(raw.strip())
        out.setdefault(section, {})[key] = value
    return out


def _load_env_overrides(env: Mapping[str, str], prefix: str) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_key, env_val in env.items():
        if not env_key.startswith(prefix):
            continue
        path_parts = env_key[len(prefix):].lower().split("__")
        _assign_env_override(overrides, path_parts, env_val)
    return overrides


def _assign_env_override(dst: Dict[str, Any], path_parts: List[str], raw_val: str) -> None:
    cur = dst
    for part in path_parts[:-1]:
        if part not in cur or not isinstance(cur[part], dict):
            cur[part] = {}
        cur = cur[part]
    leaf = path_parts[-1]
    # List-like settings for env ergonomics
    if leaf == "jito_endpoints":
        cur[leaf] = [s.strip() for s in raw_val.split(",") if s.strip()]
        return
    if leaf == "private_key":
        cur[leaf] = raw_val.strip()
        return
    cur[leaf] = _coerce_env_value(raw_val)


def _coerce_env_value(val: str) -> Any:
    lowered = val.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        pass
    return val


def _section(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = cfg.get(name, {}) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _build_rpc(cfg: Dict[str, Any]) -> RpcSettings:
    section = _section(cfg, "rpc")
    return RpcSettings(
        endpoint=str(section.get("endpoint", "") or "").strip(),
        websocket_endpoint=section.get("websocket_endpoint"),
        commitment=str(section.get("commitment", "confirmed")).lower(),
        confirm_timeout_seconds=float(section.get("confirm_timeout_seconds", 60.0)),
        poll_interval_seconds=float(section.get("poll_interval_seconds", 0.5)),
    )


def _build_trading(cfg: Dict[str, Any]) -> TradingSettings:
    section = _section(cfg, "trading")
    return TradingSettings(
        quote_mint=str(section.get("quote_mint", "WSOL")),
        extra_quote_tokens=str(section.get("extra_quote_tokens", "") or ""),
        buy_slippage=float(section.get("buy_slippage", 20.0)),
        sell_slippage=float(section.get("sell_slippage", 20.0)),
        max_buy_retries=int(section.get("max_buy_retries", 10)),
        max_sell_retries=int(section.get("max_sell_retries", 10)),
        compute_unit_limit=int(section.get("compute_unit_limit", 200_000)),
        compute_unit_price=int(section.get("compute_unit_price", 20_000)),
    )


def _build_executor(cfg: Dict[str, Any]) -> ExecutorSettings:
    section = _section(cfg, "executor")
    endpoints = section.get("jito_endpoints")
    if endpoints is None and section.get("jito_block_engine_url"):
        endpoints = [str(section["jito_block_engine_url"]).rstrip("/") + "/api/v1/bundles"]
    if isinstance(endpoints, str):
        endpoints = [s.strip() for s in endpoints.split(",") if s.strip()]
    return ExecutorSettings(
        kind=str(section.get("kind", "default")).lower(),
        custom_fee=float(section.get("custom_fee", 0.006)),
        simulate=_to_bool(section.get("simulate", False)),
        warp_url=str(section.get("warp_url", WARP_EXECUTE_URL)),
        jito_endpoints=tuple(endpoints) if endpoints else DEFAULT_JITO_ENDPOINTS,
        jito_dynamic_tip=_to_bool(section.get("jito_dynamic_tip", False)),
        http_proxy=section.get("http_proxy") or None,
    )


def _build_logging(cfg: Dict[str, Any]) -> LoggingSettings:
    section = _section(cfg, "logging")
    return LoggingSettings(
        level=str(section.get("level", "INFO")).upper(),
        file=section.get("file") or None,
    )
