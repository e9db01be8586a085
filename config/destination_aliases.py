"""Starter destination alias table.

Maps the names customers actually write to the canonical place name used in
package catalogs. Aliases are compared after normalization (lowercase, no
accents). Extend per market.
"""

DESTINATION_ALIASES = [
    {
        "canonical": "new york",
        "aliases": ["nyc", "new york city", "manhattan", "big apple"],
        "country": "united states",
    },
    {
        "canonical": "los angeles",
        "aliases": ["la", "l a"],
        "country": "united states",
    },
    {
        "canonical": "united states",
        "aliases": ["usa", "us", "u s a", "america", "united states of america"],
        "country": None,
    },
    {
        "canonical": "united kingdom",
        "aliases": ["uk", "u k", "britain", "great britain", "england"],
        "country": None,
    },
    {
        "canonical": "united arab emirates",
        "aliases": ["uae", "u a e", "emirates"],
        "country": None,
    },
    {
        "canonical": "dubai",
        "aliases": ["dxb"],
        "country": "united arab emirates",
    },
    {
        "canonical": "bangkok",
        "aliases": ["bkk", "krung thep"],
        "country": "thailand",
    },
    {
        "canonical": "ho chi minh city",
        "aliases": ["saigon", "hcmc", "ho chi minh"],
        "country": "vietnam",
    },
    {
        "canonical": "mumbai",
        "aliases": ["bombay"],
        "country": "india",
    },
    {
        "canonical": "kolkata",
        "aliases": ["calcutta"],
        "country": "india",
    },
    {
        "canonical": "beijing",
        "aliases": ["peking"],
        "country": "china",
    },
    {
        "canonical": "maldives",
        "aliases": ["male", "maldive islands"],
        "country": None,
    },
    {
        "canonical": "bali",
        "aliases": ["denpasar", "ubud"],
        "country": "indonesia",
    },
    {
        "canonical": "netherlands",
        "aliases": ["holland", "the netherlands"],
        "country": None,
    },
    {
        "canonical": "czech republic",
        "aliases": ["czechia"],
        "country": None,
    },
    {
        "canonical": "turkey",
        "aliases": ["turkiye"],
        "country": None,
    },
]
