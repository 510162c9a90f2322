"""Service catalog: known subscription services and their senders.

Entry order encodes priority. Put the most distinctive keywords first so
that a generic product name never shadows a more specific entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

ARABIC_REGIONS = frozenset({"MA", "DZ", "TN", "SA", "AE", "EG", "KW"})
FRANCOPHONE_REGIONS = frozenset({"FR", "BE", "CH", "MA", "SN", "TN", "DZ"})


@dataclass(frozen=True)
class ServiceCatalogEntry:
    """A known subscription service.

    ``regions`` empty means the service applies everywhere. ``price_range``
    is the expected USD charge, enforced only by the strict profile.
    """

    key: str
    name: str
    category: str
    domains: tuple[str, ...]
    keywords: tuple[str, ...]
    regions: frozenset[str] = frozenset()
    price_range: tuple[Decimal, Decimal] | None = None
    high_quality: bool = False

    def applies_to(self, region: str) -> bool:
        return not self.regions or region in self.regions


def _usd(lo: str, hi: str) -> tuple[Decimal, Decimal]:
    return Decimal(lo), Decimal(hi)


SERVICE_CATALOG: tuple[ServiceCatalogEntry, ...] = (
    ServiceCatalogEntry(
        "youtube_premium", "YouTube Premium", "Entertainment",
        ("youtube.com",), ("youtube premium", "youtube music premium"),
        price_range=_usd("6.99", "29.99"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "google_one", "Google One", "Storage",
        (), ("google one",),
        price_range=_usd("1.99", "24.99"),
    ),
    ServiceCatalogEntry(
        "google_workspace", "Google Workspace", "Productivity",
        ("workspace.google.com",), ("google workspace", "g suite"),
        price_range=_usd("6.00", "30.00"),
    ),
    ServiceCatalogEntry(
        "apple_one", "Apple One", "Entertainment",
        (), ("apple one", "apple music", "apple tv+", "icloud+"),
        price_range=_usd("0.99", "37.95"),
    ),
    ServiceCatalogEntry(
        "amazon_prime", "Amazon Prime", "Shopping",
        (), ("amazon prime", "prime video", "prime membership"),
        price_range=_usd("5.99", "139.00"),
    ),
    ServiceCatalogEntry(
        "netflix", "Netflix", "Entertainment",
        ("netflix.com",), ("netflix",),
        price_range=_usd("6.99", "24.99"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "disney_plus", "Disney+", "Entertainment",
        ("disneyplus.com",), ("disney+", "disney plus"),
        price_range=_usd("7.99", "139.99"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "shahid", "Shahid VIP", "Entertainment",
        ("shahid.net",), ("shahid vip", "shahid"),
        regions=ARABIC_REGIONS,
    ),
    ServiceCatalogEntry(
        "canal_plus", "Canal+", "Entertainment",
        ("canalplus.com", "canal-plus.com"), ("canal+", "canal plus"),
        regions=FRANCOPHONE_REGIONS,
    ),
    ServiceCatalogEntry(
        "movistar_plus", "Movistar Plus+", "Entertainment",
        ("movistar.es",), ("movistar plus", "movistar+"),
        regions=frozenset({"ES"}),
    ),
    ServiceCatalogEntry(
        "u_next", "U-NEXT", "Entertainment",
        ("unext.jp",), ("u-next",),
        regions=frozenset({"JP"}),
    ),
    ServiceCatalogEntry(
        "spotify", "Spotify", "Music",
        ("spotify.com",), ("spotify premium", "spotify"),
        price_range=_usd("4.99", "19.99"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "deezer", "Deezer", "Music",
        ("deezer.com",), ("deezer premium", "deezer"),
    ),
    ServiceCatalogEntry(
        "anghami", "Anghami Plus", "Music",
        ("anghami.com",), ("anghami plus", "anghami"),
        regions=ARABIC_REGIONS,
    ),
    ServiceCatalogEntry(
        "github", "GitHub Pro", "Development",
        ("github.com",), ("github copilot", "github pro", "github"),
        price_range=_usd("4.00", "21.00"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "stackblitz", "StackBlitz", "Development",
        ("stackblitz.com",), ("stackblitz",),
        price_range=_usd("8.00", "50.00"),
    ),
    ServiceCatalogEntry(
        "jetbrains", "JetBrains", "Development",
        ("jetbrains.com",), ("jetbrains",),
        price_range=_usd("8.90", "299.00"),
    ),
    ServiceCatalogEntry(
        "chatgpt", "ChatGPT Plus", "AI",
        ("openai.com",), ("chatgpt plus", "chatgpt"),
        price_range=_usd("20.00", "200.00"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "claude", "Claude Pro", "AI",
        ("anthropic.com",), ("claude pro", "claude max"),
        price_range=_usd("17.00", "200.00"),
    ),
    ServiceCatalogEntry(
        "adobe", "Adobe Creative Cloud", "Design",
        ("adobe.com",), ("adobe creative cloud", "creative cloud", "adobe"),
        price_range=_usd("9.99", "89.99"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "figma", "Figma", "Design",
        ("figma.com",), ("figma professional", "figma"),
        price_range=_usd("12.00", "45.00"),
    ),
    ServiceCatalogEntry(
        "canva", "Canva Pro", "Design",
        ("canva.com",), ("canva pro", "canva"),
        price_range=_usd("12.99", "119.99"),
    ),
    ServiceCatalogEntry(
        "microsoft_365", "Microsoft 365", "Productivity",
        ("microsoft.com", "office.com"), ("microsoft 365", "office 365"),
        price_range=_usd("6.99", "99.99"), high_quality=True,
    ),
    ServiceCatalogEntry(
        "notion", "Notion", "Productivity",
        ("notion.so",), ("notion plus", "notion labs", "notion ai"),
        price_range=_usd("8.00", "20.00"),
    ),
    ServiceCatalogEntry(
        "slack", "Slack", "Productivity",
        ("slack.com",), ("slack pro", "slack technologies"),
        price_range=_usd("7.25", "15.00"),
    ),
    ServiceCatalogEntry(
        "zoom", "Zoom", "Productivity",
        ("zoom.us",), ("zoom pro", "zoom workplace"),
        price_range=_usd("13.32", "21.99"),
    ),
    ServiceCatalogEntry(
        "dropbox", "Dropbox", "Storage",
        ("dropbox.com",), ("dropbox plus", "dropbox"),
        price_range=_usd("9.99", "24.00"),
    ),
    ServiceCatalogEntry(
        "one_password", "1Password", "Security",
        ("1password.com",), ("1password",),
        price_range=_usd("2.99", "59.88"),
    ),
    ServiceCatalogEntry(
        "nordvpn", "NordVPN", "Security",
        ("nordvpn.com", "nordaccount.com"), ("nordvpn",),
        price_range=_usd("3.00", "160.00"),
    ),
    ServiceCatalogEntry(
        "duolingo", "Duolingo Super", "Education",
        ("duolingo.com",), ("duolingo super", "duolingo plus", "duolingo max"),
        price_range=_usd("6.99", "167.99"),
    ),
    ServiceCatalogEntry(
        "linkedin_premium", "LinkedIn Premium", "Professional",
        ("linkedin.com",), ("linkedin premium",),
        price_range=_usd("29.99", "99.99"),
    ),
)

# Payment gateways: their domain says a payment happened, not which service.
PAYMENT_PROCESSOR_DOMAINS: frozenset[str] = frozenset({
    "stripe.com",
    "paypal.com",
    "paddle.com",
    "paddle.net",
    "fastspring.com",
    "chargebee.com",
    "recurly.com",
    "braintreegateway.com",
    "2checkout.com",
    "adyen.com",
    "squareup.com",
    "gumroad.com",
    "lemonsqueezy.com",
    "cmi.co.ma",
    "payzone.ma",
})

# Webmail providers never name a service.
WEBMAIL_DOMAINS: frozenset[str] = frozenset({
    "gmail.com",
    "googlemail.com",
    "outlook.com",
    "hotmail.com",
    "live.com",
    "yahoo.com",
    "icloud.com",
    "me.com",
    "aol.com",
    "proton.me",
    "protonmail.com",
    "gmx.de",
    "gmx.net",
    "web.de",
    "orange.fr",
    "laposte.net",
    "free.fr",
    "menara.ma",
})


def catalog_sender_domains() -> tuple[str, ...]:
    """All catalog domains, in catalog order, without duplicates."""
    seen: dict[str, None] = {}
    for entry in SERVICE_CATALOG:
        for domain in entry.domains:
            seen.setdefault(domain, None)
    return tuple(seen)


def catalog_entry(key: str) -> ServiceCatalogEntry | None:
    """Look up a catalog entry by key."""
    for entry in SERVICE_CATALOG:
        if entry.key == key:
            return entry
    return None
