"""Static game catalog: categories, bot names and avatar parts."""

from typing import List, Optional

from .models import Category


AVATARS = [
    "🐼", "🦊", "🦁", "🐯", "🐸", "🐙", "🦄", "🐲", "🤖", "👽", "👻", "🤡",
    "🤠", "🥳", "😎", "🤓", "😺", "😸", "🙈", "🙉", "🙊", "🐵", "🐶", "🐺",
    "🐗", "🐴", "🦓", "🦒", "🐘", "🦏", "🦛", "🐭", "🐹", "🐰", "🐿️", "🦔",
    "🦇", "🐻", "🐨", "🦘", "🦡", "🦃", "🐔", "🐓", "🐣", "🐤", "🐥", "🐦",
    "🦉", "🦅", "🦆", "🦢", "🦜", "🦩", "🦚", "🦈", "🐬", "🐳", "🐋", "🐟",
    "🐠", "🐡", "🦐", "🦞", "🦀", "🦑", "🐌", "🦋", "🐛", "🐜", "🐝", "🐞",
]

AVATAR_COLORS = [
    "bg-slate-600", "bg-red-500", "bg-orange-500", "bg-amber-500", "bg-yellow-500",
    "bg-lime-500", "bg-green-500", "bg-emerald-500", "bg-teal-500", "bg-cyan-500",
    "bg-sky-500", "bg-blue-500", "bg-indigo-500", "bg-violet-500", "bg-purple-500",
    "bg-fuchsia-500", "bg-pink-500", "bg-rose-500",
]

AVATAR_ACCESSORIES = [
    "",  # none
    "👓", "🕶️", "🎩", "🧢", "👑", "🎧", "🎀", "🌹", "⭐", "🌙", "🔥", "💡", "🎮", "🎸",
    "🍕", "🍔", "🏆", "🥇", "💎", "🎈", "🪄", "📷", "📱", "💻", "💼", "☂️",
]

BOT_NAMES = [
    "QuizMaster99", "TriviaTitan", "BrainyBot", "FastFinger",
    "KnowItAll", "Guesser", "SmartyPants", "QuizWiz",
]


CATEGORIES: List[Category] = [
    Category(id="science", name="Science", icon="🧬", color="bg-green-500"),
    Category(id="history", name="History", icon="📜", color="bg-yellow-500"),
    Category(id="geography", name="Geography", icon="🌍", color="bg-blue-500"),
    Category(id="entertainment", name="Pop Culture", icon="🎬", color="bg-pink-500"),
    Category(id="sports", name="Sports", icon="⚽", color="bg-orange-500"),
    Category(id="tech", name="Tech", icon="💻", color="bg-purple-500"),
    Category(id="art", name="Art", icon="🎨", color="bg-red-500"),
    Category(id="literature", name="Literature", icon="📚", color="bg-indigo-500"),
    Category(id="music", name="Music", icon="🎵", color="bg-teal-500"),
    Category(id="food", name="Food", icon="🍔", color="bg-amber-500"),
]


def find_category(name_or_id: str) -> Optional[Category]:
    key = name_or_id.strip().lower()
    return next((c for c in CATEGORIES if c.id == key or c.name.lower() == key), None)
