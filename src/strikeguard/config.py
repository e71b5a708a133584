"""
Configuration management for StrikeGuard.

Settings come from the process environment, optionally seeded from a .env
file. Missing credentials and malformed punishment settings are reported
together in a single ValueError.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

TRUTHY = frozenset({"true", "1", "yes", "on"})
LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_MUTE_LENGTHS = (8, 16, 36)
DEFAULT_STRIKES_PER_MUTE = 3

# Variable name and the placeholder shipped in .env.example
REQUIRED_VARS = (
    ("TWITCH_CLIENT_ID", "your_client_id_here"),
    ("TWITCH_CLIENT_SECRET", "your_client_secret_here"),
    ("TWITCH_OAUTH_TOKEN", "oauth:your_token_here"),
    ("TWITCH_BOT_NICK", "your_bot_username"),
    ("BOT_OWNER", "your_twitch_username"),
)


@dataclass(frozen=True)
class Config:
    """
    Bot settings.

    Attributes:
        client_id: Twitch application client ID
        client_secret: Twitch application client secret
        oauth_token: Chat token, with or without the oauth: prefix
        bot_nick: Login name of the bot account
        channels: Channels to join; the first one is where mutes and bans happen
        owner: Login name allowed to switch automod on and off
        prefix: Command prefix
        log_level: Name of the logging level
        log_file: Extra plain-text log destination
        database_path: SQLite file holding strikes, audit entries and the dictionary
        production: BOT_ENV=production; enables real mute lengths and auto-bans
            of elevated users
        strikes_per_mute: Strikes between two timeouts
        mute_lengths: Successive timeout lengths, counted in mute_unit
        strike_expire_days: Days a strike counts towards punishments
        embed_strike_shift: Tiers subtracted for banned words in text the
            author did not type
        mod_log_channel: Channel that receives audit entries
        advertise_channel: Channel where invites may be posted
        unmoderated_channels: Channels where banned words are allowed
        whitelisted_invites: Invite codes allowed everywhere
        link_channels: Channels where anyone may post any link
        automod_enabled: Whether automod starts switched on
    """

    client_id: str
    client_secret: str
    oauth_token: str
    bot_nick: str
    channels: list[str]
    owner: str

    prefix: str = "!"
    log_level: str = "INFO"
    log_file: str | None = None
    database_path: str = "data/strikeguard.db"
    production: bool = False

    strikes_per_mute: int = DEFAULT_STRIKES_PER_MUTE
    mute_lengths: tuple[int, ...] = DEFAULT_MUTE_LENGTHS
    strike_expire_days: int = 21
    embed_strike_shift: int = 1

    mod_log_channel: str | None = None
    advertise_channel: str | None = None
    unmoderated_channels: frozenset[str] = frozenset()
    whitelisted_invites: frozenset[str] = frozenset()
    link_channels: frozenset[str] = frozenset()
    automod_enabled: bool = True

    @property
    def secrets(self) -> list[str]:
        """Credentials that must never reach a log line."""
        return [value for value in (self.client_id, self.client_secret, self.oauth_token) if value]

    @property
    def mute_unit(self) -> timedelta:
        """One hour in production, one minute while testing."""
        return timedelta(hours=1) if self.production else timedelta(minutes=1)

    @property
    def strike_expiry(self) -> timedelta:
        return timedelta(days=self.strike_expire_days)

    def get_oauth_token_clean(self) -> str:
        """The OAuth token without its oauth: prefix."""
        return self.oauth_token.removeprefix("oauth:")


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in TRUTHY


def _parse_int(value: str | None, default: int) -> int:
    """Read an integer, falling back to default when unset or malformed."""
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_channels(value: str | None) -> list[str]:
    """
    Read a comma-separated channel list.

    Names are lowercased and lose any leading #. Blank items are skipped.
    """
    names = (item.strip().lstrip("#").lower() for item in (value or "").split(","))
    return [name for name in names if name]


def _parse_channel(value: str | None) -> str | None:
    names = _parse_channels(value)
    return names[0] if names else None


def _parse_int_list(value: str | None, default: tuple[int, ...]) -> tuple[int, ...]:
    """
    Read a comma-separated list of positive integers.

    Args:
        value: Raw variable, None or empty for the default
        default: Returned when value is unset

    Raises:
        ValueError: If an item is not a positive integer
    """
    if not value:
        return default
    numbers = tuple(int(item) for item in value.split(",") if item.strip())
    if not numbers or min(numbers) <= 0:
        raise ValueError(f"expected positive integers, got {value!r}")
    return numbers


def _parse_codes(value: str | None) -> frozenset[str]:
    return frozenset(code.strip().lower() for code in (value or "").split(",") if code.strip())


def load_config(env_file: str | Path | None = None) -> Config:
    """
    Build the bot settings from the environment.

    Args:
        env_file: .env file to load first. Without one, python-dotenv
            searches the working directory and its parents.

    Returns:
        Config: Validated settings

    Raises:
        ValueError: Listing every missing or invalid variable
    """
    load_dotenv(env_file)

    problems: list[str] = []
    required: dict[str, str] = {}
    for name, placeholder in REQUIRED_VARS:
        value = os.getenv(name, "")
        if not value or value == placeholder:
            problems.append(f"{name} is required")
        required[name] = value

    channels = _parse_channels(os.getenv("TWITCH_CHANNELS"))
    if not channels:
        problems.append("TWITCH_CHANNELS is required (comma-separated list)")

    mute_lengths = DEFAULT_MUTE_LENGTHS
    try:
        mute_lengths = _parse_int_list(os.getenv("MUTE_LENGTHS"), DEFAULT_MUTE_LENGTHS)
    except ValueError as e:
        problems.append(f"MUTE_LENGTHS is invalid: {e}")

    strikes_per_mute = _parse_int(os.getenv("STRIKES_PER_MUTE"), DEFAULT_STRIKES_PER_MUTE)
    if strikes_per_mute < 1:
        problems.append("STRIKES_PER_MUTE must be at least 1")

    if problems:
        raise ValueError("Configuration errors:\n" + "\n".join(f"  - {p}" for p in problems))

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    return Config(
        client_id=required["TWITCH_CLIENT_ID"],
        client_secret=required["TWITCH_CLIENT_SECRET"],
        oauth_token=required["TWITCH_OAUTH_TOKEN"],
        bot_nick=required["TWITCH_BOT_NICK"],
        channels=channels,
        owner=required["BOT_OWNER"],
        prefix=os.getenv("BOT_PREFIX", "!"),
        log_level=log_level if log_level in LOG_LEVELS else "INFO",
        log_file=os.getenv("LOG_FILE") or None,
        database_path=os.getenv("DATABASE_PATH", "data/strikeguard.db"),
        production=os.getenv("BOT_ENV", "development").lower() == "production",
        strikes_per_mute=strikes_per_mute,
        mute_lengths=mute_lengths,
        strike_expire_days=_parse_int(os.getenv("STRIKE_EXPIRE_DAYS"), 21),
        embed_strike_shift=_parse_int(os.getenv("EMBED_STRIKE_SHIFT"), 1),
        mod_log_channel=_parse_channel(os.getenv("MOD_LOG_CHANNEL")),
        advertise_channel=_parse_channel(os.getenv("ADVERTISE_CHANNEL")),
        unmoderated_channels=frozenset(_parse_channels(os.getenv("UNMODERATED_CHANNELS"))),
        whitelisted_invites=_parse_codes(os.getenv("WHITELISTED_INVITES")),
        link_channels=frozenset(_parse_channels(os.getenv("LINK_CHANNELS"))),
        automod_enabled=_parse_bool(os.getenv("ENABLE_AUTOMOD"), True),
    )
