"""
Static fallback song lists.

Used when the language model is unavailable or returns too few songs.
The prompt is matched against genre keywords (first rule wins); with no
match, every genre is mixed. Selection is shuffled so repeated prompts
don't always get the same list.
"""

from __future__ import annotations

import random
import re

GENRE_SONGS: dict[str, list[str]] = {
    "classic_rock": [
        "Queen - Bohemian Rhapsody",
        "Led Zeppelin - Stairway to Heaven",
        "Pink Floyd - Comfortably Numb",
        "The Beatles - Let It Be",
        "The Rolling Stones - Sympathy for the Devil",
        "Deep Purple - Smoke on the Water",
        "Black Sabbath - Paranoid",
        "The Who - Won't Get Fooled Again",
        "Jimi Hendrix - Purple Haze",
        "The Doors - Light My Fire",
        "Cream - Sunshine of Your Love",
        "Lynyrd Skynyrd - Free Bird",
    ],
    "modern_rock": [
        "Foo Fighters - Everlong",
        "Red Hot Chili Peppers - Under the Bridge",
        "Nirvana - Smells Like Teen Spirit",
        "Pearl Jam - Alive",
        "Green Day - Boulevard of Broken Dreams",
        "Radiohead - Creep",
        "Muse - Uprising",
        "Linkin Park - In the End",
    ],
    "pop": [
        "The Weeknd - Blinding Lights",
        "Dua Lipa - Levitating",
        "Bruno Mars - Uptown Funk",
        "Ed Sheeran - Shape of You",
        "Harry Styles - As It Was",
        "Taylor Swift - Shake It Off",
        "Ariana Grande - 7 Rings",
        "Post Malone - Circles",
        "Billie Eilish - Bad Guy",
        "Olivia Rodrigo - Good 4 U",
    ],
    "latin": [
        "Bad Bunny - Titi Me Preguntó",
        "Shakira - Hips Don't Lie",
        "Karol G - TQG",
        "Los Bunkers - Venus",
        "Soda Stereo - De Música Ligera",
        "Mon Laferte - Tu Falta de Querer",
        "Daddy Yankee - Gasolina",
        "J Balvin - Mi Gente",
        "Rosalía - Malamente",
        "Peso Pluma - Ella Baila Sola",
    ],
    "indie": [
        "Arctic Monkeys - Do I Wanna Know",
        "Tame Impala - The Less I Know The Better",
        "The Strokes - Last Nite",
        "MGMT - Electric Feel",
        "Phoenix - 1901",
        "Foster the People - Pumped Up Kicks",
        "Glass Animals - Heat Waves",
        "The Killers - Mr Brightside",
        "Cage the Elephant - Cigarette Daydreams",
        "Two Door Cinema Club - What You Know",
    ],
    "chill": [
        "Billie Eilish - Ocean Eyes",
        "Lorde - Ribs",
        "The xx - Intro",
        "Cigarettes After Sex - Apocalypse",
        "Clairo - Sofia",
        "Rex Orange County - Loving Is Easy",
        "Beach House - Space Song",
        "Bon Iver - Holocene",
        "Hozier - Cherry Wine",
        "Daughter - Youth",
    ],
}

# (pattern, genres) — checked in order, first match wins.
_GENRE_RULES: list[tuple[re.Pattern[str], tuple[str, ...]]] = [
    (re.compile(r"rock.*clasico|classic.*rock|70s.*rock|80s.*rock"), ("classic_rock",)),
    (re.compile(r"rock.*modern|modern.*rock|90s.*rock|2000s.*rock"), ("modern_rock",)),
    (re.compile(r"rock|metal|guitar|banda"), ("classic_rock", "modern_rock")),
    (re.compile(r"pop|comercial|radio|chart"), ("pop",)),
    (re.compile(r"latin|español|spanish|reggaeton|chile|mexicano"), ("latin",)),
    (re.compile(r"indie|alternativ|underground|hipster"), ("indie",)),
    (re.compile(r"chill|relax|calm|suave|tranquil|study"), ("chill",)),
]


def genres_for_prompt(prompt: str) -> tuple[str, ...]:
    lower = prompt.lower()
    for pattern, genres in _GENRE_RULES:
        if pattern.search(lower):
            return genres
    return tuple(GENRE_SONGS)


def get_fallback_songs(
    prompt: str,
    count: int,
    rng: random.Random | None = None,
) -> list[str]:
    """Up to `count` shuffled songs from the genres matching the prompt."""
    pool = [song for genre in genres_for_prompt(prompt) for song in GENRE_SONGS[genre]]
    rng = rng or random.Random()
    return rng.sample(pool, k=min(count, len(pool)))
