from enum import Enum
from typing import Literal

Competition = Literal["low", "medium", "high"]


class KeywordPreference(str, Enum):
    default = "default"
    ng = "ng"
    essential = "essential"


class Tone(str, Enum):
    professional = "professional"
    casual = "casual"
    technical = "technical"
    friendly = "friendly"


class TargetLength(str, Enum):
    short = "short"
    medium = "medium"
    long = "long"


# Japanese descriptions used inside prompts.
TONE_DESCRIPTIONS: dict[Tone, str] = {
    Tone.professional: "専門的でフォーマル",
    Tone.casual: "親しみやすくカジュアル",
    Tone.technical: "技術的で正確",
    Tone.friendly: "フレンドリーで読みやすい",
}

TONE_INSTRUCTIONS: dict[Tone, str] = {
    Tone.professional: "専門的でフォーマルな文体で書いてください。",
    Tone.casual: "親しみやすくカジュアルな文体で書いてください。",
    Tone.technical: "技術的で正確な文体で書いてください。",
    Tone.friendly: "読者に語りかけるようなフレンドリーな文体で書いてください。",
}
