"""
Link and invite control.

Server invites and bot invites belong in the advertising channel. Outside
the link channels, untrusted users may only post links to well known sites.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from strikeguard.utils.logging import get_logger

logger = get_logger(__name__)

INVITE_PATTERN = re.compile(
    r"discord(?:(?:(?:app)?\.com|:/(?:/-?)?)/invite|\.gg(?:/invite)?)/(?P<code>[\w-]{2,255})",
    re.IGNORECASE,
)

BOT_INVITE_PATTERN = re.compile(
    r"discord(?:app)?\.com/(?:(?:api/)?oauth2/authorize/?\?\S*client_id=\d{17,20}\S*(?:\s|$)"
    r"|application-directory/\d{17,20})",
    re.IGNORECASE,
)

LINK_PATTERN = re.compile(r"(?:https?://|www\.)[^\s\"')*,:;<>\]]+", re.IGNORECASE)


class ViolationKind(Enum):
    """Kinds of link violation."""
    INVITE = "invite"
    BOT_INVITE = "bot_invite"
    LINK = "link"


@dataclass
class LinkViolation:
    """
    Links of one kind that should not have been posted.

    Attributes:
        kind: What was posted
        links: The offending links, without duplicates
        strikes: Strike weight to issue for them
    """
    kind: ViolationKind
    links: list[str]
    strikes: float

    def reason(self, channel: str) -> str:
        """Strike reason shown in the audit log."""
        if self.kind == ViolationKind.INVITE:
            return f"Server invite in #{channel}"
        if self.kind == ViolationKind.BOT_INVITE:
            return f"Bot invite in #{channel}"
        plural = "" if len(self.links) == 1 else "s"
        return f"Posted blacklisted link{plural} in #{channel}"

    def notice(self, advertise_channel: str) -> str:
        """Sentence appended to the public warning."""
        if self.kind == ViolationKind.INVITE:
            return f"Please keep server invites in #{advertise_channel}!"
        if self.kind == ViolationKind.BOT_INVITE:
            return f"Please don't post bot invites outside of #{advertise_channel}!"
        which = "that link" if len(self.links) == 1 else "those links"
        return f"Sorry, but you can't post {which} outside a channel like #{advertise_channel}!"


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


class LinkFilter:
    """Finds invites and links that are not allowed where they were posted."""

    # Trusted domains
    URL_WHITELIST: set[str] = {
        "twitch.tv", "youtube.com", "youtu.be",
        "twitter.com", "x.com", "imgur.com", "giphy.com",
        "streamlabs.com", "streamelements.com", "nightbot.tv",
    }

    def __init__(
        self,
        advertise_channel: str | None,
        whitelisted_invites: set[str] | None = None,
        link_channels: set[str] | None = None,
        partial_strike_count: float = 0.25,
    ) -> None:
        """
        Initialize the filter.

        Args:
            advertise_channel: Channel where invites are allowed. When unset
                nothing is filtered.
            whitelisted_invites: Invite codes that may be posted anywhere
            link_channels: Channels where anyone may post any link
            partial_strike_count: Weight of each blacklisted link
        """
        self.advertise_channel = advertise_channel
        self.whitelisted_invites = {code.lower() for code in whitelisted_invites or set()}
        self.link_channels = link_channels or set()
        self.partial_strike_count = partial_strike_count

    def is_whitelisted_domain(self, url: str) -> bool:
        """Check a link's host against the whitelist, subdomains included."""
        if url.lower().startswith("www."):
            url = f"https://{url}"
        host = (urlsplit(url).hostname or "").lower().rstrip(".")
        return any(host == domain or host.endswith("." + domain) for domain in self.URL_WHITELIST)

    def find_invites(self, content: str) -> list[str]:
        """Invite links to servers that are not whitelisted."""
        return _unique([
            match.group()
            for match in INVITE_PATTERN.finditer(content)
            if match.group("code").lower() not in self.whitelisted_invites
        ])

    def check(
        self,
        content: str,
        channel_name: str,
        is_trusted: bool,
        is_bot: bool = False,
    ) -> list[LinkViolation]:
        """
        Check a message for link violations.

        Args:
            content: Message text
            channel_name: Channel the message was posted in
            is_trusted: Whether the author may post links anywhere
            is_bot: Whether the author is a bot account

        Returns:
            list[LinkViolation]: One entry per violated rule
        """
        if not self.advertise_channel or channel_name == self.advertise_channel:
            return []

        violations = []

        invites = self.find_invites(content)
        if invites:
            violations.append(LinkViolation(ViolationKind.INVITE, invites, len(invites)))

        bots = _unique([match.group().strip() for match in BOT_INVITE_PATTERN.finditer(content)])
        if bots and not is_bot:
            violations.append(LinkViolation(ViolationKind.BOT_INVITE, bots, len(bots)))

        if not is_trusted and channel_name not in self.link_channels:
            links = _unique([
                link
                for link in LINK_PATTERN.findall(content)
                if not INVITE_PATTERN.search(link)
                and not BOT_INVITE_PATTERN.search(link)
                and not self.is_whitelisted_domain(link)
            ])
            if links:
                violations.append(
                    LinkViolation(ViolationKind.LINK, links, len(links) * self.partial_strike_count)
                )

        if violations:
            logger.debug(
                "Link violations in #%s: %s",
                channel_name,
                ", ".join(violation.kind.value for violation in violations),
            )
        return violations
